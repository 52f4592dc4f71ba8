from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

from order_engine.core.config import LOG_LEVEL
from order_engine.core.request_context import get_actor_id, get_request_id, get_tenant_id

_SENSITIVE_PATTERNS = [
    re.compile(r"(customer_phone\s*[:=]\s*)('[^']*'|\"[^\"]*\"|[^\s,}]+)", re.IGNORECASE),
    re.compile(r"(customer_name\s*[:=]\s*)('[^']*'|\"[^\"]*\"|[^\s,}]+)", re.IGNORECASE),
    re.compile(r"(password\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
    re.compile(r"(token\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
    re.compile(r"(secret\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
]
_SENSITIVE_EXTRA_KEYS = ("customer_phone", "customer_name")


def mask_sensitive(value: str) -> str:
    masked = value
    for pattern in _SENSITIVE_PATTERNS:
        masked = pattern.sub(r"\1***", masked)
    return masked


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "tenant_id": getattr(record, "tenant_id", None) or get_tenant_id(),
            "actor_id": getattr(record, "actor_id", None) or get_actor_id(),
            "module": record.name,
            "message": mask_sensitive(record.getMessage()),
            "duration_ms": getattr(record, "duration_ms", None),
        }
        for key in ("endpoint", "method", "status_code", "order_id", "ingredient_id", "error_kind"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        for key in _SENSITIVE_EXTRA_KEYS:
            if getattr(record, key, None):
                payload[key] = "***"
        if record.exc_info:
            payload["exception"] = mask_sensitive(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(LOG_LEVEL)

    handler = logging.StreamHandler()
    formatter = JsonFormatter("%(message)s")
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(LOG_LEVEL)
