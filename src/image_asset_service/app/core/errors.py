from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger


class ServiceError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        details: list[Any] | None = None,
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.extra = extra or {}

    def to_envelope(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        return body


class ValidationError(ServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationRequired(ServiceError):
    status_code = 401
    code = "AUTH_REQUIRED"


class InvalidToken(ServiceError):
    status_code = 401
    code = "INVALID_TOKEN"


class Forbidden(ServiceError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(ServiceError):
    status_code = 409
    code = "CONFLICT"


class QuotaExceeded(ServiceError):
    status_code = 413
    code = "QUOTA_EXCEEDED"


class InternalError(ServiceError):
    status_code = 500
    code = "INTERNAL_ERROR"


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": "Internal server error",
                "code": InternalError.code,
            },
        )

    logger.info(
        f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}"
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    logger.info(f"{request.method} {request.url.path} -> 400 invalid request: {details}")
    return JSONResponse(
        status_code=400,
        content=ValidationError("Invalid request", details=details).to_envelope(),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}"
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "code": InternalError.code,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
