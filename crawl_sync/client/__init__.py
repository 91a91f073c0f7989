"""
Remote crawl service client and its error taxonomy.
"""

from .crawl_api import CrawlServiceClient
from .errors import (
    AuthenticationError,
    ConflictError,
    CrawlApiError,
    JobAlreadyRunningError,
    JobNotFoundError,
    NotFoundError,
    PermissionDeniedError,
    ServerError,
    TransportError,
    ValidationError,
    error_from_response,
)

__all__ = [
    "CrawlServiceClient",
    "AuthenticationError",
    "ConflictError",
    "CrawlApiError",
    "JobAlreadyRunningError",
    "JobNotFoundError",
    "NotFoundError",
    "PermissionDeniedError",
    "ServerError",
    "TransportError",
    "ValidationError",
    "error_from_response",
]
