"""
Exceptions raised by the OpenF1 client.
"""

from typing import Optional


class OpenF1Error(Exception):
    """Base class for client errors."""


class OpenF1APIError(OpenF1Error):
    """Upstream answered with a non-success status."""

    def __init__(self, status: int, url: str, reason: Optional[str] = None):
        self.status = status
        self.url = url
        self.reason = reason
        message = f"API Error {status}: {reason}" if reason else f"API Error {status}"
        super().__init__(f"{message} ({url})")


class RateLimitExceededError(OpenF1APIError):
    """Still throttled (HTTP 429) after the rate-limit retry bound."""

    def __init__(self, url: str, attempts: int):
        self.attempts = attempts
        super().__init__(429, url, f"rate limited {attempts} times")


class AuthenticationError(OpenF1Error):
    """Credentials could not be exchanged for a token."""


class ClientClosedError(OpenF1Error):
    """The client was closed before the request was issued."""


class OpenF1ConnectionError(OpenF1Error):
    """Network failure, timeout, or an undecodable response body."""

    def __init__(self, url: str, cause: BaseException):
        self.url = url
        super().__init__(f"Request to {url} failed: {cause!r}")
