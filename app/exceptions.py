"""
RFC 7807 Problem Details exception handling.

Every error the feedback API surfaces is a ``RateProException`` carrying a
machine-readable ``ErrorCode``. The pipeline-specific kinds are:

- ``InputInvalid``: a Response or Insight is missing required fields
- ``InsightUnavailable`` (and its auth / rate-limit / timeout / prompt
  variants): the external completion failed, so the analysis is void
- ``SurveyValidationFailed``: the survey flow validator rejected a publish
- ``SegmentRuleInvalid`` / ``ActionPayloadInvalid``: rejected rule trees
  and action payloads

``PersistenceFailed`` is never raised to a caller: the action executor
catches it per intent and reports it in the results list.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import uuid
from datetime import datetime, timezone

from app.middleware.correlation import get_request_id

logger = logging.getLogger(__name__)

PROBLEM_BASE_URL = "https://api.ratepro.io/problems"

PROBLEM_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Validation Error",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def _get_trace_id() -> str:
    """Get trace ID from correlation context or generate a new one."""
    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return str(uuid.uuid4())[:12]


class ErrorCode(str, Enum):
    """Standardized error codes for the feedback API."""

    # Validation
    VALIDATION_ERROR = "VAL_001"
    MISSING_FIELD = "VAL_003"
    SURVEY_FLOW_INVALID = "VAL_005"
    SEGMENT_RULE_INVALID = "VAL_006"
    ACTION_PAYLOAD_INVALID = "VAL_007"

    # Resource
    NOT_FOUND = "RES_001"
    CONFLICT = "RES_003"

    # External Services
    AI_SERVICE_ERROR = "EXT_003"
    AI_AUTH_ERROR = "EXT_007"
    AI_RATE_LIMITED = "EXT_008"
    DATABASE_ERROR = "EXT_004"

    # Server
    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"
    TIMEOUT = "SRV_003"


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
        code: Machine-readable error code for client handling
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Unique identifier for tracing in logs/Sentry
        errors: Field-level or survey-flow errors
        retry_after: Seconds to wait before retrying (for rate limits)
    """

    type: str = Field(default="about:blank", description="URI reference identifying the problem type")
    title: str = Field(description="Short, human-readable summary of the problem")
    status: int = Field(description="HTTP status code")
    detail: str = Field(description="Human-readable explanation specific to this occurrence")
    instance: Optional[str] = Field(default=None, description="URI reference for this specific occurrence")
    code: str = Field(description="Machine-readable error code")
    timestamp: str = Field(description="ISO 8601 timestamp")
    trace_id: str = Field(description="Unique trace ID for debugging")
    errors: Optional[List[Any]] = Field(default=None, description="Field-level or flow validation errors")
    retry_after: Optional[int] = Field(default=None, description="Seconds to wait before retrying")


class RateProException(HTTPException):
    """
    Base exception for the feedback API with RFC 7807 support.

    Usage:
        raise RateProException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Survey response not found",
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Any]] = None,
        retry_after: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or PROBLEM_TITLES.get(status_code, "Error")
        self.instance = instance
        self.errors = errors
        self.retry_after = retry_after
        self.trace_id = _get_trace_id()
        self.timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def __str__(self) -> str:
        return str(self.detail)

    def to_problem_detail(self) -> ProblemDetail:
        """Convert to RFC 7807 ProblemDetail."""
        return ProblemDetail(
            type=f"{PROBLEM_BASE_URL}/{self.code.value.lower().replace('_', '-')}",
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
            retry_after=self.retry_after,
        )


# Convenience exception classes

class NotFoundError(RateProException):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: Any, instance: Optional[str] = None):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
            instance=instance,
        )


class ConflictError(RateProException):
    """Resource conflict (409)."""

    def __init__(self, detail: str):
        super().__init__(status_code=409, code=ErrorCode.CONFLICT, detail=detail)


class ValidationError(RateProException):
    """Validation error (422)."""

    def __init__(
        self,
        detail: str,
        errors: Optional[List[Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(status_code=422, code=code, detail=detail, errors=errors)


class InputInvalid(ValidationError):
    """A Response or Insight is missing required fields. Nothing is persisted."""

    def __init__(self, detail: str, errors: Optional[List[Any]] = None):
        super().__init__(detail=detail, errors=errors, code=ErrorCode.MISSING_FIELD)


class SurveyValidationFailed(ValidationError):
    """Survey flow failed pre-publish validation."""

    def __init__(self, errors: List[str]):
        super().__init__(
            detail=f"Survey cannot be published: {len(errors)} validation error(s)",
            errors=list(errors),
            code=ErrorCode.SURVEY_FLOW_INVALID,
        )


class SegmentRuleInvalid(ValidationError):
    """Segment rule references an unknown field/operator or an uncoercible value."""

    def __init__(self, detail: str):
        super().__init__(detail=detail, code=ErrorCode.SEGMENT_RULE_INVALID)


class ActionPayloadInvalid(ValidationError):
    """Action payload cannot be normalized for the action store."""

    def __init__(self, detail: str):
        super().__init__(detail=detail, code=ErrorCode.ACTION_PAYLOAD_INVALID)


class InsightUnavailable(RateProException):
    """External completion failed; the whole analysis is invalid."""

    def __init__(
        self,
        detail: str = "Insight provider is unavailable",
        status_code: int = 502,
        code: ErrorCode = ErrorCode.AI_SERVICE_ERROR,
        retry_after: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=status_code,
            code=code,
            detail=detail,
            retry_after=retry_after,
            headers=headers,
        )


class InsightAuthError(InsightUnavailable):
    """Provider rejected the credentials (401/403)."""

    def __init__(self, detail: str = "Insight provider API key is invalid or missing"):
        super().__init__(detail=detail, code=ErrorCode.AI_AUTH_ERROR)


class InsightRateLimited(InsightUnavailable):
    """Provider rate limit or quota exceeded (429)."""

    def __init__(self, retry_after: int = 60):
        super().__init__(
            detail=f"Insight provider rate limit exceeded. Try again in {retry_after} seconds.",
            status_code=429,
            code=ErrorCode.AI_RATE_LIMITED,
            retry_after=retry_after,
            headers={"Retry-After": str(retry_after)},
        )


class InsightTimeout(InsightUnavailable):
    """Provider did not answer within the configured timeout."""

    def __init__(self, timeout: float):
        super().__init__(
            detail=f"Insight provider timed out after {timeout:g}s",
            status_code=504,
            code=ErrorCode.TIMEOUT,
        )


class InsightInvalidPrompt(InsightUnavailable):
    """Prompt was empty or not a string."""

    def __init__(self, detail: str = "Prompt must be a non-empty string"):
        super().__init__(detail=detail, status_code=422, code=ErrorCode.VALIDATION_ERROR)


class PersistenceFailed(Exception):
    """A single store write failed. Reported per intent, never raised to callers."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


# Exception handlers for FastAPI

HTTP_ERROR_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.VALIDATION_ERROR,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    502: ErrorCode.AI_SERVICE_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
    504: ErrorCode.TIMEOUT,
}


def problem_response(exc: RateProException, request: Request) -> JSONResponse:
    """Render a RateProException as an ``application/problem+json`` response."""
    problem = exc.to_problem_detail()
    if problem.instance is None:
        problem.instance = str(request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=exc.headers,
    )


def create_exception_handlers():
    """
    Create exception handlers for the application.

    Every handler funnels into ``problem_response`` so plain HTTP errors,
    request validation failures and unexpected exceptions share one body shape.

    Usage in main.py:
        handlers = create_exception_handlers()
        app.add_exception_handler(RateProException, handlers["ratepro"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_ratepro_exception(request: Request, exc: RateProException) -> JSONResponse:
        logger.warning(
            f"{exc.code.value} {request.method} {request.url.path}: {exc.detail}",
            extra={"trace_id": exc.trace_id, "status_code": exc.status_code},
        )
        return problem_response(exc, request)

    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        wrapped = RateProException(
            status_code=exc.status_code,
            code=HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
            detail=str(exc.detail),
            headers=getattr(exc, "headers", None),
        )
        return problem_response(wrapped, request)

    async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Request body/query errors, one entry per offending field."""
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        wrapped = RateProException(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            errors=errors,
        )
        return problem_response(wrapped, request)

    async def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
        from app.config import settings
        from app.core.sentry import capture_exception

        wrapped = RateProException(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            # Internal details only outside production
            detail=str(exc) if settings.DEBUG else "An unexpected error occurred",
        )
        logger.exception(
            f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
            extra={"trace_id": wrapped.trace_id},
        )
        capture_exception(
            exc,
            context={"trace_id": wrapped.trace_id, "path": request.url.path, "method": request.method},
        )
        return problem_response(wrapped, request)

    return {
        "ratepro": handle_ratepro_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
