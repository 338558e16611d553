# src/dfremote/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from dfremote.messages import HeaderRevision

_LOADED = False

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5000  # DFHack RPC default


def load_dotenv_if_present(dotenv_path: Optional[str] = None) -> bool:
    """
    Best-effort .env loader.

    - Deterministic: loads once per process.
    - Never overrides variables already set in the environment.
    - Path rules:
        1) If dotenv_path arg provided, use it.
        2) Else if DFREMOTE_DOTENV_PATH is set, use that.
        3) Else default to ".env" in current working directory.

    Returns True if a dotenv file was found AND loaded, else False.
    """
    global _LOADED
    if _LOADED:
        return False
    _LOADED = True

    path = Path(dotenv_path or os.getenv("DFREMOTE_DOTENV_PATH", ".env")).expanduser()
    if not path.is_file():
        return False

    load_dotenv(dotenv_path=str(path), override=False)
    return True


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return int(default)


def _env_seconds_from_ms(name: str, default: Optional[float]) -> Optional[float]:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        ms = int(raw)
    except ValueError:
        return default
    if ms < 0:
        return default
    return ms / 1000.0


def _env_revision(name: str, default: HeaderRevision) -> HeaderRevision:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    try:
        return HeaderRevision(raw)
    except ValueError:
        allowed = ", ".join(r.value for r in HeaderRevision)
        raise ValueError(f"{name} must be one of: {allowed} (got {raw!r})") from None


@dataclass(frozen=True, slots=True)
class ClientConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    header_revision: HeaderRevision = HeaderRevision.PADDED
    close_grace_s: float = 0.1
    # None: wait for replies indefinitely
    call_timeout_s: Optional[float] = None


def load_client_config(*, dotenv_path: Optional[str] = None) -> ClientConfig:
    load_dotenv_if_present(dotenv_path)
    return ClientConfig(
        host=os.environ.get("DFREMOTE_HOST", DEFAULT_HOST).strip() or DEFAULT_HOST,
        port=_env_int("DFREMOTE_PORT", DEFAULT_PORT),
        header_revision=_env_revision("DFREMOTE_HEADER_REVISION", HeaderRevision.PADDED),
        close_grace_s=_env_seconds_from_ms("DFREMOTE_CLOSE_GRACE_MS", 0.1) or 0.0,
        call_timeout_s=_env_seconds_from_ms("DFREMOTE_CALL_TIMEOUT_MS", None),
    )
