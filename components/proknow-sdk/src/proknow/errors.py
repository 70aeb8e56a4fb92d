"""Exception hierarchy for the ProKnow SDK."""

from __future__ import annotations


class ProKnowError(Exception):
    """Base exception for all errors raised by this SDK."""

    def __init__(self, message: str) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(self.message)


class ProKnowHttpError(ProKnowError):
    """Raised when an HTTP request is not successful.

    Args:
        method: HTTP method of the failed request.
        url: Full URL of the failed request.
        status_code: HTTP status code (400 for transport failures).
        reason: HTTP reason phrase, e.g. "Forbidden".
        body: Response body or a description of the failure.
    """

    def __init__(
        self,
        method: str,
        url: str,
        status_code: int,
        reason: str,
        body: str | None = None,
    ) -> None:
        """Initialize the HTTP error."""
        self.method = method
        self.url = url
        self.status_code = status_code
        self.reason = reason
        self.body = body or ""
        super().__init__(f"HttpError({reason}, {self.body})")


class InvalidOperationError(ProKnowError):
    """The operation is not valid for the current state of the object."""

    pass


class ProKnowTimeoutError(ProKnowError, TimeoutError):
    """A bounded poll ran out of retries before reaching the expected status."""

    pass


class EntityTypeError(ProKnowError, ValueError):
    """An entity or object type outside the supported set."""

    pass


class DraftLockRenewalError(ProKnowError):
    """The background renewal of a structure set draft lock failed."""

    pass
