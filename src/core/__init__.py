"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from src.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    InvalidRecipientException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    DeliveryException,
    VerificationNotAllowedException,
    ResendCooldownException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "InvalidRecipientException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "DeliveryException",
    "VerificationNotAllowedException",
    "ResendCooldownException",
]
