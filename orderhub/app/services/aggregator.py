"""Per-status order counts across every partition."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from config import ScanStrategy

from ..domain.normalize import resolve_status
from ..domain.order_status import KNOWN_STATUSES, STATISTIC_STATUSES, OrderStatus
from .scanner import PartitionScanner

logger = logging.getLogger(__name__)


@dataclass
class StatusCounts:
    """Counts per known status.

    ``total`` is the number of counted orders, so it always equals the sum of
    ``counts``. Draft orders are tallied in ``drafts`` and records whose
    status is not a known code in ``skipped``; neither is part of ``total``.
    """

    counts: dict[str, int] = field(default_factory=dict)
    total: int = 0
    strategy: ScanStrategy = ScanStrategy.AUTO
    failed_partitions: list[str] = field(default_factory=list)
    skipped: int = 0
    drafts: int = 0

    @property
    def partial(self) -> bool:
        return bool(self.failed_partitions)

    def as_dict(self) -> dict[str, int]:
        return {**self.counts, "total": self.total}


class OrderAggregator:
    def __init__(self, scanner: PartitionScanner) -> None:
        self.scanner = scanner

    async def count_by_status(
        self,
        status: str | None = None,
        *,
        strategy: ScanStrategy | None = None,
        timeout: float | None = None,
    ) -> StatusCounts:
        """Count orders per status, optionally only those with ``status``.

        The indexed and nested strategies read the same documents through
        :class:`PartitionScanner`, so they produce identical counts.
        """

        scan = await self.scanner.scan(
            status, strategy=strategy, timeout=timeout, operation="stats"
        )
        tally: Counter[str] = Counter(resolve_status(doc.data) for doc in scan.documents)

        counts = {code: tally[code] for code in STATISTIC_STATUSES if tally[code]}
        unknown = sorted(code for code in tally if code not in KNOWN_STATUSES)
        skipped = sum(tally[code] for code in unknown)
        if skipped:
            logger.info(
                "ignored %d orders with unknown status: %s",
                skipped,
                ", ".join(unknown),
                extra={"operation": "stats"},
            )
        return StatusCounts(
            counts=counts,
            total=sum(counts.values()),
            strategy=scan.strategy,
            failed_partitions=sorted(scan.failed_partitions),
            skipped=skipped,
            drafts=tally[OrderStatus.DRAFT.value],
        )


__all__ = ["OrderAggregator", "StatusCounts"]
