"""Service-level error taxonomy and its mapping onto HTTP responses."""
import enum
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    authentication_missing = "authentication_missing"
    authorization_denied = "authorization_denied"
    not_purchased = "not_purchased"
    insufficient_balance = "insufficient_balance"
    not_found = "not_found"
    validation_failed = "validation_failed"
    conflict = "conflict"
    rate_limited = "rate_limited"
    upstream_failure = "upstream_failure"


STATUS_CODES = {
    ErrorKind.authentication_missing: 401,
    ErrorKind.authorization_denied: 403,
    ErrorKind.not_purchased: 403,
    ErrorKind.insufficient_balance: 400,
    ErrorKind.not_found: 404,
    ErrorKind.validation_failed: 400,
    ErrorKind.conflict: 409,
    ErrorKind.rate_limited: 429,
    ErrorKind.upstream_failure: 500,
}


class ServiceError(Exception):
    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]


async def _service_error_handler(request: Request, exc: ServiceError):
    if exc.kind == ErrorKind.upstream_failure:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind.value},
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Validation failed",
            "error": ErrorKind.validation_failed.value,
            "details": details,
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
