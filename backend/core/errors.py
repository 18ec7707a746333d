from typing import Any, Dict, List, Optional


class TrackerError(Exception):
    """Base class for errors the API turns into a JSON ``{"error": ...}`` body."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TrackerError):
    status_code = 404


class ConflictError(TrackerError):
    status_code = 409


class AuthenticationError(TrackerError):
    status_code = 401


class StorageError(TrackerError):
    status_code = 500


class ValidationError(TrackerError):
    status_code = 400

    def __init__(self, message: str, issues: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.issues = issues or []
