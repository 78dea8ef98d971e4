"""Typed exception hierarchy for aggregator errors.

Provides structured exceptions for differentiated error handling
(auth errors vs transient network errors vs data issues). Callers that only
care that "talking to the aggregator failed" catch :class:`AggregatorError`.
"""


class AggregatorError(Exception):
    """Base exception for all aggregator transport errors.

    Carries the provider name so callers can identify which aggregator failed.
    """

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class AggregatorAuthError(AggregatorError):
    """Application credentials missing, expired, or rejected (HTTP 401/403)."""

    pass


class AggregatorConnectionError(AggregatorError):
    """Network failures: timeouts, DNS resolution, connection refused.

    Retriable by default.
    """

    def __init__(self, message: str, provider_name: str = "", retriable: bool = True):
        self.retriable = retriable
        super().__init__(message, provider_name)


class AggregatorAPIError(AggregatorError):
    """HTTP 4xx/5xx responses from the aggregator API."""

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        """429 (rate limit) and 5xx errors are generally retriable."""
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500


class AggregatorDataError(AggregatorError):
    """Malformed or unparseable response from the aggregator."""

    pass
