from .aggregator import OrderAggregator, StatusCounts
from .fanout import FanoutResult, FirstHit, fan_out, first_hit
from .locator import Location, OrderLocator
from .owners import OwnerDirectory, StoreOwnerDirectory
from .scanner import PartitionScanner, ScanResult

__all__ = [
    "FanoutResult",
    "FirstHit",
    "Location",
    "OrderAggregator",
    "OrderLocator",
    "OwnerDirectory",
    "PartitionScanner",
    "ScanResult",
    "StatusCounts",
    "StoreOwnerDirectory",
    "fan_out",
    "first_hit",
]
