"""Domain-specific exceptions and their HTTP translation."""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("nft_api.errors")


class ServiceError(Exception):
    """Base exception for service-layer failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Server Error"

    def __init__(self, message: str, *, error: Optional[str] = None, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if error:
            self.error = error
        self.details = details

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ConfigurationError(ServiceError):
    """Raised when a required setting is missing or malformed."""


class ValidationError(ServiceError):
    """Raised when input is malformed or missing."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation Error"


class InvalidKeyError(ConfigurationError):
    """Raised when the wallet secret key cannot be decoded."""


class NotFound(ServiceError):
    """Raised when an address, program or asset cannot be located."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"


class ProgramNotFound(NotFound):
    """Raised for program names missing from the registry."""


class AssetNotFound(NotFound):
    error = "NFT not found"


class UpstreamError(ServiceError):
    """Raised when the RPC endpoint or the on-chain program rejects a call."""

    def __init__(
        self,
        message: str,
        *,
        error: Optional[str] = None,
        details: Optional[str] = None,
        unavailable: bool = False,
    ) -> None:
        super().__init__(message, error=error, details=details)
        self.unavailable = unavailable
        if unavailable:
            self.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            if not error:
                self.error = "Service Unavailable"


def _validation_details(exc: RequestValidationError) -> List[Dict[str, str]]:
    details = []
    for err in exc.errors():
        # Drop the "body"/"path" location prefix so fields read like the request payload.
        loc = [str(part) for part in err.get("loc", ())[1:]]
        details.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return details


def _server_error_body(exc: Exception, include_stack: bool) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": "Server Error", "message": str(exc) or "Internal Server Error"}
    if include_stack:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def register_exception_handlers(app: FastAPI, *, include_stack: bool) -> None:
    """Installs the handlers that map every failure onto the `{error, message, details?}` shape."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Validation failed", "details": _validation_details(exc)},
        )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        # The service has already reset its context var; the router tag on request.state outlives it.
        extra = {"use_case": getattr(request.state, "use_case", "undefined")}
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc, extra=extra)
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc, extra=extra)
        body = exc.to_body()
        if isinstance(exc, ConfigurationError):
            body = _server_error_body(exc, include_stack)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Endpoint not found"})
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled error on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
            extra={"use_case": getattr(request.state, "use_case", "undefined")},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_server_error_body(exc, include_stack),
        )


__all__ = [
    "ServiceError",
    "ConfigurationError",
    "ValidationError",
    "InvalidKeyError",
    "NotFound",
    "ProgramNotFound",
    "AssetNotFound",
    "UpstreamError",
    "register_exception_handlers",
]
