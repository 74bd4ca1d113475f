"""
Request-level errors and the JSON error body shared by every handler.
"""

from typing import Any, Dict, Optional


class InvalidRequestError(Exception):
    """Raised for malformed requests that pass schema validation."""
    pass


def error_body(error: str, correlation_id: str, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": error, "correlation_id": correlation_id}
    if message:
        body["message"] = message
    return body
