"""Exception taxonomy shared by clients, services and the HTTP layer.

The API server maps every subclass of ``ELogbookError`` to a JSON error
response (see ``server/api_server.py``), so services raise these instead of
HTTPException.
"""


class ELogbookError(Exception):
    """Base class of every user-facing failure."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthError(ELogbookError):
    """Bad credentials, duplicate registration, expired or invalid token."""

    status_code = 401


class PermissionDeniedError(ELogbookError):
    """The caller is authenticated but lacks the required role or ownership."""

    status_code = 403


class StoreError(ELogbookError):
    """A document store, identity provider or object store call failed or was rejected."""

    status_code = 502


class RecordValidationError(ELogbookError):
    """Input rejected before any external call was issued."""

    status_code = 400


class NotFoundError(ELogbookError):
    status_code = 404


class ConfirmationRequiredError(ELogbookError):
    """A destructive operation was requested without explicit confirmation."""

    status_code = 409


class InvalidPathError(RecordValidationError, ValueError):
    """A store path segment contains a character the store forbids."""
