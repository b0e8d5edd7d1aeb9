"""Aggregation-side errors."""

from typing import Optional


class AggregationError(Exception):
    """Base exception for the aggregation engine."""

    pass


class EmptyInputError(AggregationError):
    """Aggregation was asked to summarise zero records; nothing is returned."""

    pass


class BudgetExceededError(AggregationError):
    """
    Release denied: the consumer's remaining epsilon is below the request.

    Expected and recoverable; no value was released and no budget was spent.
    """

    def __init__(
        self, consumer_id: str, requested: float, remaining: Optional[float] = None
    ) -> None:
        self.consumer_id = consumer_id
        self.requested = requested
        self.remaining = remaining
        detail = f", remaining {remaining}" if remaining is not None else ""
        super().__init__(
            f"privacy budget exceeded for {consumer_id!r}: requested {requested}{detail}"
        )


class KeyMismatchError(AggregationError):
    """Ciphertexts under different public keys were combined (programmer error)."""

    pass


class MetricSchemaError(AggregationError, ValueError):
    """Metric vector does not match the engine's schema or value domain."""

    pass


class DecryptionRangeError(AggregationError):
    """Decrypted aggregate lies outside the searchable plaintext range."""

    pass
