"""Root conftest: applies .env.test before chat_client.config is imported."""
from __future__ import annotations

import os
from pathlib import Path

_ENV_TEST = Path(__file__).resolve().parent / ".env.test"

if _ENV_TEST.exists():
    for raw in _ENV_TEST.read_text().splitlines():
        key, sep, value = raw.strip().partition("=")
        # Only client settings; blank lines and comments have no "=" or start with "#".
        if sep and key.startswith("CHAT_"):
            os.environ.setdefault(key.strip(), value.strip())

# Tests must not pick up a developer's real credentials from .env.
os.environ.setdefault("CHAT_ACCESS_TOKEN", "")
os.environ.setdefault("CHAT_JWT_SECRET", "")
