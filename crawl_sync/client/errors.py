"""
Typed errors raised by the crawl service client.

Callers branch on the class, not on status codes: authentication failures
need a re-login, permission failures must not be retried, and
``JobNotFoundError`` is a terminal signal for job tracking rather than a
failure.
"""

from typing import Any, Optional

import httpx


class CrawlApiError(Exception):
    """Base class for every error surfaced by the crawl service client."""

    default_message = "Crawl service request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        detail: Any = None,
    ):
        self.message = message or self.default_message
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.message)


class ValidationError(CrawlApiError):
    """Malformed input rejected by the service (4xx other than auth)."""

    default_message = "Invalid site data. Please check your input."


class ConflictError(ValidationError):
    """The site already exists."""

    default_message = "Site already exists. Please choose a different name."


class JobAlreadyRunningError(ValidationError):
    """A crawl was requested for a site that already has a job in flight."""

    default_message = "A crawl is already running for this site."


class AuthenticationError(CrawlApiError):
    """Missing or expired credential."""

    default_message = "Authentication failed. Please log in again."


class PermissionDeniedError(CrawlApiError):
    """Authenticated but not allowed."""

    default_message = "Access forbidden. Please check your permissions."


class NotFoundError(CrawlApiError):
    default_message = "Site not found. It may have been deleted."


class JobNotFoundError(NotFoundError):
    """The service no longer knows the job (finished or evicted)."""

    default_message = "Crawl job not found."


class TransportError(CrawlApiError):
    """Network failure, timeout, or an unusable response."""

    default_message = "Network error. Please check your connection."


class ServerError(TransportError):
    default_message = "Crawl service error. Please try again."


def _extract_detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or None
    if isinstance(body, dict):
        return body.get("detail", body)
    return body


def error_from_response(response: httpx.Response, job_lookup: bool = False) -> CrawlApiError:
    """
    Map an unsuccessful HTTP response to a typed error.

    Args:
        response: Response with a 4xx/5xx status
        job_lookup: Whether the request was a job status lookup, in which
            case 404 means the job is gone

    Returns:
        The matching CrawlApiError subclass instance
    """
    code = response.status_code
    detail = _extract_detail(response)
    message = detail if isinstance(detail, str) and detail else None

    if code == 401:
        cls = AuthenticationError
    elif code == 403:
        cls = PermissionDeniedError
    elif code == 404:
        cls = JobNotFoundError if job_lookup else NotFoundError
    elif code == 409:
        cls = ConflictError
    elif 400 <= code < 500:
        cls = ValidationError
    elif code >= 500:
        cls = ServerError
    else:
        cls = TransportError

    return cls(message, status_code=code, detail=detail)
