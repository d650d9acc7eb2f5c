"""
Pipeline error taxonomy.

Raised by normalizers, integration clients, and the upsert writer; translated
to HTTP responses once, in api.errors.
"""

from typing import Any


class PipelineError(Exception):
    """Base class for every error the ingestion pipeline surfaces to callers."""

    error = "Pipeline error"

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(PipelineError):
    """Malformed or incomplete input record. Local to one record or request."""

    error = "Validation error"


class AuthError(PipelineError):
    """Missing/invalid credentials, token, or webhook signature."""

    error = "Authentication error"


class UpstreamError(PipelineError):
    """The e-commerce, warehouse, or purchasing API failed or was unreachable."""

    error = "Upstream error"

    def __init__(self, message: str, *, status_code: int | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.status_code = status_code

    @property
    def caused_by_configuration(self) -> bool:
        """True when the user can fix it in Settings (bad credentials, URL, permissions)."""
        return self.status_code in (401, 403, 404)


class StorageError(PipelineError):
    """The persistence layer rejected a write or could not be reached."""

    error = "Storage error"
