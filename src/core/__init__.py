"""
Core library: shared infrastructure for the service clients.

Modules:
    auth        - Azure credentials and access token caching
    resilience  - Retry with backoff
    logging     - Structured JSON logging with context variables
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization helpers

Design Principles:
    - No dependencies on a specific service client
    - All modules are independently testable
    - Async-first where applicable
"""

from .types import AccessToken, ErrorCategory, TokenCredential

__version__ = "0.1.0"

__all__ = [
    "AccessToken",
    "ErrorCategory",
    "TokenCredential",
]
