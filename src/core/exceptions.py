"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. Verification outcomes such as
an expired or wrong code are ordinary result values, not exceptions.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class InvalidRecipientException(ValidationException):
    """Recipient address is syntactically invalid."""

    def __init__(self, recipient: str, details: Optional[dict] = None):
        self.recipient = recipient
        super().__init__(f"Invalid recipient address: '{recipient}'", details)


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class DeliveryException(ExternalServiceException):
    """Exception for transient mail transport failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Mail Transport", message, details)


class VerificationNotAllowedException(DomainException):
    """Raised when an address may not receive a verification code right now."""

    def __init__(self, email: str, reason: str, details: Optional[dict] = None):
        self.email = email
        self.reason = reason
        super().__init__(
            f"Verification code cannot be issued for {email}: {reason}",
            details or {"email": email, "reason": reason}
        )


class ResendCooldownException(DomainException):
    """Raised when a resend is requested before the cooldown has elapsed."""

    def __init__(self, email: str, retry_after_seconds: int, details: Optional[dict] = None):
        self.email = email
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Wait {retry_after_seconds} seconds before requesting a new code",
            details or {"email": email, "retry_after_seconds": retry_after_seconds}
        )
