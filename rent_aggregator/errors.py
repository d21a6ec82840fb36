# rent_aggregator/errors.py

"""Exception taxonomy shared across the aggregation pipeline."""


class AggregatorError(Exception):
    """Base exception for rent_aggregator errors."""


class ValidationError(AggregatorError):
    """Search criteria or paging parameters were rejected.

    Raised before any portal is contacted and never retried.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "invalid criteria")


class FetchError(AggregatorError):
    """A portal request failed after the executor gave up on it."""

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        cause: BaseException | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.cause = cause
        self.status_code = status_code
        self.retryable = retryable


class CacheUnavailable(AggregatorError):
    """A cache backend could not serve the request.

    Always caught inside the cache tier; callers only ever see a miss.
    """


class ConnectorContractError(AggregatorError):
    """A connector returned something other than a list of records."""
