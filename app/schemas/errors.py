"""
Shared error response schemas for OpenAPI documentation.

Import these in endpoint files to add consistent error responses.

Note: These definitions use inline examples rather than model references
to avoid circular imports with the exceptions module.
"""

from typing import Dict, Any


def _problem(description: str, status: int, title: str, detail: str, code: str, **extra: Any) -> Dict[str, Any]:
    example = {
        "type": f"https://api.ratepro.io/problems/{code.lower().replace('_', '-')}",
        "title": title,
        "status": status,
        "detail": detail,
        "code": code,
        "timestamp": "2026-01-29T10:30:00Z",
        "trace_id": "abc123def456",
        **extra,
    }
    return {"description": description, "content": {"application/problem+json": {"example": example}}}


# Reusable response definitions for OpenAPI
ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: _problem(
        "Bad Request - Missing or invalid tenant header", 400, "Bad Request",
        "X-Tenant-ID header is required", "VAL_001",
    ),
    404: _problem(
        "Not Found - Resource does not exist", 404, "Not Found",
        "Survey response with ID 123 was not found", "RES_001",
    ),
    409: _problem(
        "Conflict - Resource state does not allow the operation", 409, "Conflict",
        "A segment named 'Detractors' already exists", "RES_003",
    ),
    422: _problem(
        "Validation Error - Invalid input or survey flow", 422, "Validation Error",
        "Survey flow validation failed", "VAL_005",
        errors=['Circular logic detected involving question "How was your visit?"'],
    ),
    429: _problem(
        "Too Many Requests - Insight provider rate limit", 429, "Too Many Requests",
        "Insight provider rate limit exceeded", "EXT_008", retry_after=30,
    ),
    500: _problem(
        "Internal Server Error", 500, "Internal Server Error",
        "An unexpected error occurred", "SRV_001",
    ),
    502: _problem(
        "Bad Gateway - Insight provider error", 502, "Bad Gateway",
        "Insight provider unavailable: upstream returned 500", "EXT_003",
    ),
    504: _problem(
        "Gateway Timeout - Insight provider did not answer in time", 504, "Gateway Timeout",
        "Insight provider timed out after 30s", "SRV_003",
    ),
}


def get_error_responses(*status_codes: int) -> Dict[int, Dict[str, Any]]:
    """
    Get error response definitions for specified status codes.

    Usage in endpoint:
        @router.get(
            "/{id}",
            responses=get_error_responses(400, 404)
        )
    """
    return {
        code: ERROR_RESPONSES[code]
        for code in status_codes
        if code in ERROR_RESPONSES
    }


# Common response combinations for convenience
ANALYZE_ERROR_RESPONSES = get_error_responses(400, 404, 409, 422, 429, 500, 502, 504)
READ_ERROR_RESPONSES = get_error_responses(400, 404, 500)
WRITE_ERROR_RESPONSES = get_error_responses(400, 404, 409, 422, 500)
