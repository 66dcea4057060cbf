from __future__ import annotations


class InputError(ValueError):
    """Malformed or empty batch input. Surfaced to the caller; the batch never starts."""


class NoCompaniesFoundError(InputError):
    """Input was readable but yielded zero companies (recoverable by the caller)."""

    def __init__(
        self,
        message: str = "No companies found. Try including ticker codes like (TER) or (BBN)",
    ) -> None:
        super().__init__(message)


class UpstreamDegraded(Exception):
    """
    An external service failed, timed out or returned something unusable.

    Raised inside adapters only; every adapter boundary catches it and
    substitutes its documented fallback.
    """


class AggregationPreconditionError(RuntimeError):
    """Upstream contract violation reaching the aggregator (e.g. a company without a ticker)."""
