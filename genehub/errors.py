"""
Error taxonomy and the error envelope returned to clients.

Adapters and the HTTP wrapper raise one of the tagged `GatewayError` variants
below; the orchestrator and the FastAPI exception handlers switch on them.
Anything else that escapes is classified by `classify()` as INTERNAL (or
TIMEOUT for bare asyncio timeouts) at the boundary.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from enum import Enum
from typing import Dict, Optional

import httpx
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

log = logging.getLogger("genehub.errors")


class ErrorCategory(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    RATE_LIMITED = "RATE_LIMITED"
    EXTERNAL_API = "EXTERNAL_API"
    TIMEOUT = "TIMEOUT"
    AUTH = "AUTH"
    INTERNAL = "INTERNAL"


STATUS_CODES: Dict[ErrorCategory, int] = {
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.RATE_LIMITED: 429,
    ErrorCategory.EXTERNAL_API: 502,
    ErrorCategory.TIMEOUT: 504,
    ErrorCategory.AUTH: 401,
    ErrorCategory.INTERNAL: 500,
}

RETRYABLE: Dict[ErrorCategory, bool] = {
    ErrorCategory.NOT_FOUND: False,
    ErrorCategory.VALIDATION: False,
    ErrorCategory.RATE_LIMITED: True,
    ErrorCategory.EXTERNAL_API: True,
    ErrorCategory.TIMEOUT: True,
    ErrorCategory.AUTH: False,
    ErrorCategory.INTERNAL: True,
}


# ----------------------------------------------------------------------------
# Tagged error variants
# ----------------------------------------------------------------------------

class GatewayError(Exception):
    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, message: str, *, details: Optional[str] = None, retry_after: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.retry_after = retry_after


class NotFoundError(GatewayError):
    category = ErrorCategory.NOT_FOUND


class InvalidRequestError(GatewayError):
    category = ErrorCategory.VALIDATION


class RateLimitedError(GatewayError):
    category = ErrorCategory.RATE_LIMITED

    def __init__(self, api: str, retry_after: int = 60):
        super().__init__(f"Rate limited by {api}", retry_after=retry_after)
        self.api = api


class ExternalApiError(GatewayError):
    category = ErrorCategory.EXTERNAL_API

    def __init__(self, api: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.api = api
        self.status_code = status_code


class UpstreamTimeout(GatewayError):
    category = ErrorCategory.TIMEOUT

    def __init__(self, api: str, timeout_s: Optional[float] = None):
        msg = f"Request to {api} timed out"
        if timeout_s is not None:
            msg = f"{msg} after {timeout_s:g}s"
        super().__init__(msg)
        self.api = api


class AuthError(GatewayError):
    category = ErrorCategory.AUTH


class InternalError(GatewayError):
    category = ErrorCategory.INTERNAL


# ----------------------------------------------------------------------------
# Envelope
# ----------------------------------------------------------------------------

class ErrorBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    code: ErrorCategory
    message: str
    request_id: str
    retryable: bool
    retry_after: Optional[int] = None
    details: Optional[str] = None


class ErrorEnvelope(BaseModel):
    error: ErrorBody


def generate_request_id() -> str:
    """Short, sortable-ish id: base36 millis + random suffix."""
    millis = int(time.time() * 1000)
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    head = ""
    while millis:
        millis, rem = divmod(millis, 36)
        head = digits[rem] + head
    return f"{head}-{secrets.token_hex(3)}"


def classify(exc: BaseException) -> GatewayError:
    if isinstance(exc, GatewayError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return UpstreamTimeout("external API")
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
        return RateLimitedError("external API")
    if isinstance(exc, httpx.HTTPError):
        status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
        return ExternalApiError("external API", "External API request failed", status_code=status)
    return InternalError("An internal error occurred", details=str(exc) or exc.__class__.__name__)


def build_envelope(err: GatewayError, request_id: str) -> ErrorEnvelope:
    message, details = err.message, err.details
    if err.category is ErrorCategory.INTERNAL:
        message, details = "An internal error occurred", None
    return ErrorEnvelope(
        error=ErrorBody(
            code=err.category,
            message=message,
            request_id=request_id,
            retryable=RETRYABLE[err.category],
            retry_after=err.retry_after if err.category is ErrorCategory.RATE_LIMITED else None,
            details=details,
        )
    )


def error_response(exc: BaseException, request_id: Optional[str] = None) -> JSONResponse:
    """Classify, log with a request id and serialize an exception for the client."""
    rid = request_id or generate_request_id()
    err = classify(exc)
    if err.category is ErrorCategory.INTERNAL:
        log.error("[%s] %s: %s", rid, err.category.value, err.details or err.message, exc_info=exc)
    else:
        log.warning("[%s] %s: %s", rid, err.category.value, err.message)

    envelope = build_envelope(err, rid)
    headers = {"X-Request-Id": rid}
    if envelope.error.retry_after:
        headers["Retry-After"] = str(envelope.error.retry_after)
    return JSONResponse(
        status_code=STATUS_CODES[err.category],
        content=envelope.model_dump(by_alias=True, exclude_none=True, mode="json"),
        headers=headers,
    )
