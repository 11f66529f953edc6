from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT.

    Always taken from the verified token, never from client payloads.
    """

    user_id: int
    display_name: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or f"User {self.user_id}"
