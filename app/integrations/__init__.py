"""External integration adapters."""

from .email import EmailService

__all__ = [
    "EmailService",
]
