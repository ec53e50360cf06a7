"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- ClientError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    AuthError,
    # Base classes
    ClientError,
    # Enums
    ErrorCategory,
    PermanentError,
    ThrottlingError,
    TransientError,
    # Classification utilities
    classify_exception,
    classify_http_status,
    wrap_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "ClientError",
    "AuthError",
    "TransientError",
    "PermanentError",
    "ThrottlingError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
    "wrap_exception",
]
