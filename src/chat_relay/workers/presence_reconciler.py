"""Periodic repair of drift between the presence registry and durable flags."""
from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Callable

from chat_relay.application.uow import UnitOfWork
from chat_relay.domain.value_objects.enums import PresenceStatus
from chat_relay.infrastructure.ws.registry import PresenceRegistry

logger = logging.getLogger(__name__)

UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]


class PresenceReconciler:
    """Background task comparing who is connected with who is marked online.

    Users flagged online without a live connection are marked offline; users
    connected but flagged offline are marked online. Registry state is the
    source of truth; this process is assumed to be the only instance.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        uow_factory: UoWFactory,
        interval: float,
    ) -> None:
        self._registry = registry
        self._uow_factory = uow_factory
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="presence-reconciler")
        logger.info("Presence reconciler started (interval=%.1fs)", self._interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Presence reconciler stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.reconcile_once()
            except Exception:
                logger.exception("Presence reconciliation failed")

    async def reconcile_once(self) -> tuple[set[int], set[int]]:
        """Returns (marked_online, marked_offline)."""
        live = self._registry.online_user_ids()
        async with self._uow_factory() as uow:
            durable = await uow.users.online_ids()
            stale = durable - live
            missing = live - durable
            if not stale and not missing:
                return set(), set()

            now = datetime.now(timezone.utc)
            for user_id in stale:
                await uow.users_w.set_presence(
                    user_id, is_online=False, last_seen=now, status=PresenceStatus.OFFLINE,
                )
            for user_id in missing:
                await uow.users_w.set_presence(user_id, is_online=True, last_seen=now)
            await uow.commit()

        logger.info(
            "Presence drift repaired: %d marked online, %d marked offline",
            len(missing), len(stale),
        )
        return missing, stale
