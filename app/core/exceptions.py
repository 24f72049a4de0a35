"""Custom exception types for domain and API layers."""


class AppError(Exception):
    """Base app exception."""

    status_code = 500


class ValidationError(AppError):
    """Validation failure for user input or rendered artifacts."""

    status_code = 400


class NotFoundError(AppError):
    """Requested record does not exist."""

    status_code = 404


class IntegrationError(AppError):
    """External integration call failure."""

    status_code = 502
