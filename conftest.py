"""Root conftest: test settings must be in the environment before
``conversation_sync.config`` builds its module-level ``settings``."""
from __future__ import annotations

import os
from pathlib import Path

ENV_FILE = Path(__file__).resolve().parent / ".env.test"

if ENV_FILE.exists():
    for raw in ENV_FILE.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip())

# Never reach a real backend from the test run.
os.environ.setdefault("API_BASE_URL", "http://testserver/api")
