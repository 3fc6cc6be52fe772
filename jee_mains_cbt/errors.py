"""
errors.py

Failures raised across the core boundary.
Every public service call either returns its result or raises one of these.
The API layer turns them into HTTP responses using `status_code`.
"""

from typing import Any, Dict, List, Optional


class CbtError(Exception):
    """Base class for every failure the core reports."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors: List[Dict[str, Any]] = errors or []

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": "error", "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(CbtError):
    """Malformed input the caller can correct."""

    status_code = 422


class Conflict(CbtError):
    """A question set already exists for the same (year, slot)."""

    status_code = 409


class NotFound(CbtError):
    status_code = 404


class Forbidden(CbtError):
    """The requesting candidate does not own the attempt."""

    status_code = 403


class InvalidState(CbtError):
    """Operation is illegal in the attempt's current lifecycle state."""

    status_code = 409


class StoreUnavailable(CbtError):
    """Transient store failure. Safe for the caller to retry."""

    status_code = 503
