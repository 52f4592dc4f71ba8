from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    AUTH = "AUTH"
    INTERNAL = "INTERNAL"


_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.AUTH: 403,
    ErrorKind.INTERNAL: 500,
}


class ServiceError(Exception):
    """Erro da camada de serviço.

    Os serviços levantam ServiceError em vez de HTTPException; o handler
    registrado em `register_error_handlers` converte `kind` no status HTTP.
    `details` é exposto ao cliente (ex.: lista de itens inválidos), `cause`
    fica só nos logs.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        details: list[str] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = ErrorKind(kind)
        self.details = list(details or [])
        self.cause = cause

    @property
    def status_code(self) -> int:
        return error_kind_to_status(self.kind)

    def __repr__(self) -> str:
        return f"ServiceError(kind={self.kind.value}, message={self.message!r})"


def error_kind_to_status(kind: ErrorKind | str) -> int:
    return _STATUS_BY_KIND[ErrorKind(kind)]


def internal_error(message: str, cause: BaseException | None = None) -> ServiceError:
    return ServiceError(message, ErrorKind.INTERNAL, cause=cause)


def error_payload(exc: ServiceError) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": exc.message, "kind": exc.kind.value}
    if exc.details:
        payload["details"] = exc.details
    return payload


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.kind == ErrorKind.INTERNAL:
        logger.error(
            "internal service error: %s",
            exc.message,
            exc_info=(type(exc.cause), exc.cause, exc.cause.__traceback__) if exc.cause else None,
            extra={"endpoint": request.url.path, "error_kind": exc.kind.value},
        )
    else:
        logger.info(
            "service error: %s",
            exc.message,
            extra={"endpoint": request.url.path, "error_kind": exc.kind.value},
        )
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
