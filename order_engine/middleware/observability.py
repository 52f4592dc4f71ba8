from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from order_engine.core.request_context import clear_request_context, current_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SLOW_REQUEST_MS = 1000.0


def _incoming_request_id(request: Request) -> str:
    candidate = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    return candidate[:64] or uuid.uuid4().hex


def _completion_level(status_code: int, duration_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if duration_ms >= SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.INFO


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Propaga o request id e registra uma linha por requisição.

    Dependências síncronas rodam no threadpool com uma cópia do contexto,
    então tenant e ator também são lidos dos headers como fallback.
    """

    async def dispatch(self, request: Request, call_next):
        clear_request_context()
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("unhandled error", extra={"endpoint": request.url.path, "method": request.method})
            raise
        else:
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            context = current_context()
            logger.log(
                _completion_level(status_code, duration_ms),
                "request completed",
                extra={
                    "request_id": request_id,
                    "tenant_id": context.tenant_id or request.headers.get("X-Tenant-ID"),
                    "actor_id": context.actor_id or request.headers.get("X-Actor-ID"),
                    "endpoint": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )
            clear_request_context()
