"""Root conftest: test environment for Settings, applied before any chat_sync import."""
from __future__ import annotations

import os
from pathlib import Path

_TEST_DEFAULTS = {
    "REDIS_URL": "redis://localhost:6379/15",
    "REALTIME_TOPIC_PREFIX": "chat.realtime.test",
    "POSTGRES_DB": "chat_sync_test",
}

_env_test = Path(__file__).resolve().parent / ".env.test"
if _env_test.exists():
    for line in _env_test.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip())

for key, value in _TEST_DEFAULTS.items():
    os.environ.setdefault(key, value)
