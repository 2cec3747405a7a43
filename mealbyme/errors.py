"""
Error taxonomy shared by every route and service.

Each error carries a short user-facing message, a coarse type tag and the
HTTP status it maps to. Routes never build error bodies by hand; the
exception handlers in main.py render every AppError as:

    {"error": {"message": "...", "type": "..."}}
"""

from typing import Optional

from sqlalchemy.exc import NoResultFound, SQLAlchemyError


class AppError(Exception):
    """Base class for classified errors."""

    status_code: int = 500
    error_type: str = "api_error"

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail  # Underlying error text, kept for diagnostics

    def to_body(self) -> dict:
        return {"error": {"message": self.message, "type": self.error_type}}


class ValidationError(AppError):
    """Missing or malformed input."""
    status_code = 400
    error_type = "invalid_request_error"


class AuthError(AppError):
    """Missing, invalid or expired bearer credential."""
    status_code = 401
    error_type = "authentication_error"


class SubscriptionRequiredError(AppError):
    """Premium feature requested without an active subscription."""
    status_code = 402
    error_type = "subscription_required"


class NotFoundError(AppError):
    status_code = 404
    error_type = "not_found"


class UpstreamServiceError(AppError):
    """The generation service or the billing service failed."""
    status_code = 502
    error_type = "api_error"


class StorageError(AppError):
    """
    The relational store failed.

    kind is one of:
    - no_rows: the query matched nothing
    - schema: a table or column is missing (deployment problem)
    - generic: anything else
    """
    status_code = 500
    error_type = "database_error"

    def __init__(self, message: str, *, kind: str = "generic", detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.kind = kind


class ParseError(AppError):
    """Model output is not valid JSON or does not match the expected shape."""
    status_code = 422
    error_type = "parse_error"


class GenerationTimeoutError(AppError):
    """The poll budget ran out before the run finished."""
    status_code = 504
    error_type = "timeout_error"


class ConfigurationError(AppError):
    """A required secret or setting is absent."""
    status_code = 500
    error_type = "configuration_error"

    def __init__(self, setting_name: str):
        super().__init__("Server configuration error", detail=f"Missing setting: {setting_name}")
        self.setting_name = setting_name


class SignatureVerificationError(AppError):
    """Webhook signature did not verify."""
    status_code = 400
    error_type = "signature_verification_error"


# Errors that repeating the call can never fix
NON_RETRYABLE_ERRORS = (ValidationError, AuthError, ParseError, ConfigurationError)


def _error_code(exc: BaseException) -> Optional[str]:
    """Pull the SQLSTATE code off a DBAPI error wrapped by SQLAlchemy."""
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def classify_storage_error(exc: BaseException) -> StorageError:
    """Map a SQLAlchemy exception onto a StorageError kind."""
    if isinstance(exc, StorageError):
        return exc

    text = str(exc)

    if isinstance(exc, NoResultFound):
        return StorageError("No data found.", kind="no_rows", detail=text)

    lowered = text.lower()
    if _error_code(exc) == "42P01" or "no such table" in lowered or (
        "relation" in lowered and "does not exist" in lowered
    ):
        return StorageError("System error. Please try again later.", kind="schema", detail=text)

    if isinstance(exc, SQLAlchemyError):
        return StorageError("A database error occurred. Please try again.", kind="generic", detail=text)

    return StorageError("An unexpected error occurred. Please try again.", kind="generic", detail=text)
