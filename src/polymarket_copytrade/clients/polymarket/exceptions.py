"""Exception hierarchy for Polymarket client errors.

A base exception class with a specialised API error that carries status code
and message attributes, plus the transient-failure classification used by
the order executor's retry loop.
"""

_HTTP_TOO_MANY_REQUESTS = 429
_HTTP_SERVER_ERROR = 500
_TRANSIENT_MARKERS = ("timeout", "timed out", "connection", "too many requests")


class PolymarketError(Exception):
    """Base exception for all Polymarket client errors."""


class PolymarketAPIError(PolymarketError):
    """Error returned by a Polymarket API call.

    Carry a human-readable message and an HTTP status code so callers
    can distinguish transient failures from client errors.  A status code
    of ``0`` means the request never produced an HTTP response (network
    failure or a locally detected problem).

    Args:
        msg: Human-readable description of the error.
        status_code: HTTP status code from the API response.

    """

    def __init__(self, msg: str, status_code: int) -> None:
        """Initialize Polymarket API error.

        Args:
            msg: Human-readable description of the error.
            status_code: HTTP status code from the API response.

        """
        super().__init__(f"[{status_code}] {msg}")
        self.msg = msg
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """Return whether retrying the same request may succeed.

        Rate limiting (429), server errors (5xx), and network-level failures
        are transient.  Everything else (insufficient balance, invalid tick
        size, venue rejection) is permanent for that request.
        """
        if self.status_code == _HTTP_TOO_MANY_REQUESTS:
            return True
        if self.status_code >= _HTTP_SERVER_ERROR:
            return True
        lowered = self.msg.lower()
        return any(marker in lowered for marker in _TRANSIENT_MARKERS)
