"""Error taxonomy for the table engine.

- TableEngineError: base class caught at the controller boundary
- TransportError: non-success HTTP status or network failure
- ContinuationLimitError: server kept returning continuation links
- DecodeError: response body not parseable as the expected JSON/text
"""

from typing import Optional


class TableEngineError(Exception):
    """Base class for failures the controller turns into an error emission."""

    pass


class TransportError(TableEngineError):
    """Raised when a request fails or returns a non-success status.

    Attributes:
        status_code: HTTP status, None for network-level failures
        url: Request URL that failed
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class ContinuationLimitError(TransportError):
    """Raised when a bulk retrieval exceeds the continuation hop cap.

    Guards against a server producing an endless chain of next links.
    """

    def __init__(self, hops: int, url: Optional[str] = None):
        super().__init__(
            f"Continuation limit of {hops} hops exceeded",
            status_code=None,
            url=url,
        )
        self.hops = hops


class DecodeError(TableEngineError):
    """Raised when a response body cannot be decoded."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url
