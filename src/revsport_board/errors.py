"""Error hierarchy for upstream scraping failures.

Transient failures (timeouts, connection resets, 5xx pages) are left for the
next cache refresh to retry. Permanent failures (bad credentials, markup we
cannot read) need a human or a code change.

The only immediate retry is the one-shot re-login after a 401/403, which the
session manager drives with tenacity:
    Retrying(retry=retry_if_exception_type(SessionExpired), stop=stop_after_attempt(2))
"""

from enum import Enum


class ScrapingError(Exception):
    """Base exception for all scraping errors."""

    pass


class TransientError(ScrapingError):
    """Temporary failure that may succeed on the next refresh.

    Examples: network timeouts, 503 Service Unavailable, connection resets.
    """

    pass


class UpstreamTimeout(TransientError):
    """An upstream request exceeded its timeout."""

    pass


class NetworkError(TransientError):
    """The upstream site could not be reached."""

    pass


class UpstreamHTTPError(TransientError):
    """The upstream site answered with an unexpected HTTP status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(UpstreamHTTPError):
    """Upstream answered 429 - back off until the next refresh."""

    pass


class PermanentError(ScrapingError):
    """Failure that won't succeed on retry.

    Examples: markup changed, missing required field, validation failure.
    """

    pass


class AuthFailure(str, Enum):
    """Why a login attempt or authenticated request failed."""

    NO_CSRF_TOKEN = "no_csrf_token"
    CREDENTIALS_REJECTED = "credentials_rejected"
    VERIFICATION_FAILED = "verification_failed"
    SESSION_EXPIRED = "session_expired"


class AuthError(PermanentError):
    """Login handshake failed or the session could not be restored.

    Fatal for the current refresh attempt; the cache keeps serving the last
    good snapshot if it has one.
    """

    def __init__(self, reason: AuthFailure, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or reason.value)


class SessionExpired(AuthError):
    """An authenticated request was answered with 401/403 or the login page."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(AuthFailure.SESSION_EXPIRED, message)


class ParseError(PermanentError):
    """A single card or calendar event could not be parsed.

    Raised and caught inside the page parsers; the offending record is
    skipped and the rest of the page is kept.
    """

    pass
