from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict


Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _render(event: str, fields: Json) -> str:
    payload: Json = {"ts_ms": _now_ms(), "event": str(event)}
    payload.update(fields)
    try:
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=repr)
    except (TypeError, ValueError):
        parts = [f"event={event}"] + [f"{k}={fields.get(k)!r}" for k in sorted(fields.keys())]
        return " ".join(parts)


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit a single JSONL log event.

    Dependency-free and safe for the codec/runner hot path.
    """
    if logger.isEnabledFor(logging.INFO):
        logger.info(_render(event, fields))


def log_warning(logger: logging.Logger, event: str, **fields: Any) -> None:
    if logger.isEnabledFor(logging.WARNING):
        logger.warning(_render(event, fields))
