"""Error taxonomy for the order reconciliation layer.

Expected misses (an order or owner that does not resolve) are not exceptions:
the repository reports them with the :data:`NOT_FOUND` error code inside a
result envelope. Everything below is raised.
"""

from __future__ import annotations

from typing import Mapping

NOT_FOUND = "NOT_FOUND"
INVALID = "INVALID"


class OrderHubError(Exception):
    """Base class for errors raised by this package."""


class StoreError(OrderHubError):
    """The partition store failed to serve a read."""


class WriteFailure(StoreError):
    """The partition store rejected a write (permission, conflict, offline)."""


class PartitionScanFailure(StoreError):
    """A cross-partition read could not be completed.

    Raised by stores whose scatter query is unavailable or misconfigured, and
    by the scanner/locator when the nested enumeration fallback fails too.
    """


class NormalizationError(OrderHubError, ValueError):
    """A raw record is too malformed to coerce into a canonical order."""


class PartialAggregationFailure(OrderHubError):
    """One or more owner partition reads failed during a fan-out."""

    def __init__(self, failures: Mapping[str, BaseException]) -> None:
        self.failures = dict(failures)
        names = ", ".join(sorted(self.failures))
        super().__init__(f"partition reads failed: {names}")


__all__ = [
    "INVALID",
    "NOT_FOUND",
    "NormalizationError",
    "OrderHubError",
    "PartialAggregationFailure",
    "PartitionScanFailure",
    "StoreError",
    "WriteFailure",
]
