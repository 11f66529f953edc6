"""Root conftest: fixes the environment before chat_relay.config is imported.

Values from `.env.test` win; anything it leaves out falls back to the
defaults below so the unit suite never needs a real database or Redis.
"""
from __future__ import annotations

import os
from pathlib import Path

_DEFAULTS = {
    "POSTGRES_USER": "chat",
    "POSTGRES_PASSWORD": "chat",
    "POSTGRES_DB": "chat_test",
    "JWT_SECRET": "test-secret-with-at-least-thirty-two-bytes",
    "JWT_VERIFY_MODE": "hs256",
}


def _read_env_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()
    return values


_env_test = Path(__file__).resolve().parent / ".env.test"
_values = {**_DEFAULTS, **(_read_env_file(_env_test) if _env_test.exists() else {})}
for _key, _value in _values.items():
    os.environ.setdefault(_key, _value)
