"""Value plugins: parse, format, compare and rank tracked values."""

from webtracker.trackers.base import CompareResult, ParseResult, ValuePlugin
from webtracker.trackers.number import Number, NumberTracker
from webtracker.trackers.price import Price, PriceTracker
from webtracker.trackers.version import Version, VersionTracker

__all__ = [
    "CompareResult",
    "Number",
    "NumberTracker",
    "ParseResult",
    "Price",
    "PriceTracker",
    "ValuePlugin",
    "Version",
    "VersionTracker",
]
