"""
Error types and the OpenAI-style error envelope.
"""

from typing import Any, Dict, Optional, Tuple

from .config import ERROR_TYPE
from .schemas import ErrorDetail, ErrorResponse


class ProxyError(Exception):
    """Base error carrying the HTTP status the client should see."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UpstreamError(ProxyError):
    """Upstream transport failure, non-success status, or malformed body."""


def build_error_body(message: str, status_code: int) -> Dict[str, Any]:
    return ErrorResponse(
        error=ErrorDetail(message=message, type=ERROR_TYPE, code=status_code)
    ).model_dump()


def to_client_error(exc: BaseException) -> Tuple[int, Dict[str, Any]]:
    """Map any exception to ``(status, {"error": {...}})``."""
    status_code = getattr(exc, "status_code", None) or 500
    message = str(exc) or "Internal server error"
    return status_code, build_error_body(message, status_code)


def not_found_error(path: str) -> Tuple[int, Dict[str, Any]]:
    return 404, build_error_body(f"Endpoint {path} not found", 404)
