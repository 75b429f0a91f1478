"""
Error taxonomy shared by handlers and the repository layer.
"""


class ApiError(Exception):
    """An error that maps directly onto an HTTP status and a client message."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(ApiError):
    status_code = 400


class Unauthenticated(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class MethodNotAllowed(ApiError):
    status_code = 405


class Internal(ApiError):
    status_code = 500


# ── Repository errors ────────────────────────────────────────────────

class RepositoryError(Exception):
    """Base class for failures raised by a Repository implementation."""


class InvalidReference(RepositoryError):
    """A patient_id, physician_id or drug_id did not resolve to a row."""


class NotConfigured(RepositoryError):
    """No backing store is configured."""
