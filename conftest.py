"""Root conftest: test environment must be in place before ``chat_engine.config`` loads."""
from __future__ import annotations

import os
from pathlib import Path

ROOT = Path(__file__).resolve().parent


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.removeprefix("export ").partition("=")
        os.environ.setdefault(key.strip(), value.strip().strip("'\""))


_load_env_file(ROOT / ".env.test")

# tests build their own runtime; never reach for Redis or provider keys from the shell
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ.pop("FCM_SERVER_KEY", None)
os.environ.pop("SENDGRID_API_KEY", None)
