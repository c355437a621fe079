from .audit import AuditLog, now_ms
from .logging import build_log_context, get_logger, log_event

__all__ = ["AuditLog", "build_log_context", "get_logger", "log_event", "now_ms"]
