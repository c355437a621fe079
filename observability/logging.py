from __future__ import annotations

import json
import logging
import secrets
from typing import Any, Dict, Optional

from app.core.settings import settings

_LOGGER_NAME = "nft"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def get_logger() -> logging.Logger:
    """
    Return the package logger, configured once from NFT_LOG_LEVEL.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.setLevel(_LEVELS[settings.NFT_LOG_LEVEL])
        logger.propagate = False
    return logger


def build_log_context(**fields: Any) -> Dict[str, Any]:
    """
    Build a reusable context dict attached to every event of one request.
    """
    ctx: Dict[str, Any] = {"service": settings.NFT_SERVICE_NAME, "request_id": secrets.token_hex(8)}
    for k, v in fields.items():
        if v is not None:
            ctx[k] = getattr(v, "value", v)
    return ctx


def log_event(
    event: str,
    *,
    ctx: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    level: str = "info",
    exc: Optional[BaseException] = None,
) -> None:
    """
    Emit one structured JSON log line.
    """
    payload: Dict[str, Any] = {"event": event}
    if ctx:
        payload.update(ctx)
    if data:
        payload["data"] = data
    if exc is not None:
        payload["error"] = {"type": type(exc).__name__, "message": str(exc)}
    get_logger().log(_LEVELS.get(level, logging.INFO), json.dumps(payload, sort_keys=True, default=str))
