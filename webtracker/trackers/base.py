"""Value plugin contract shared by the price, version and number trackers."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Generic, TypeVar

from webtracker.models import ChangeType, ElementMatch, ValueKind

V = TypeVar("V")


@dataclass
class ParseResult(Generic[V]):
    """Outcome of parsing extracted text. ``success=False`` is not an error."""

    success: bool
    value: V | None
    normalized: str
    confidence: int
    metadata: dict = field(default_factory=dict)

    @classmethod
    def failed(cls, text: str) -> "ParseResult":
        return cls(success=False, value=None, normalized=text, confidence=0)


@dataclass
class CompareResult:
    """Direction and magnitude of a change between two values."""

    changed: bool
    change_type: ChangeType
    difference: float
    percent_change: float | None = None

    @classmethod
    def unchanged(cls, percent_change: float | None = None) -> "CompareResult":
        return cls(
            changed=False,
            change_type=ChangeType.UNCHANGED,
            difference=0,
            percent_change=percent_change,
        )


@dataclass
class ConfigField:
    """One option a plugin accepts in its settings blob."""

    name: str
    type: str
    label: str
    required: bool = False
    default: Any = None
    options: list[tuple[str, str]] | None = None


class ValuePlugin(ABC, Generic[V]):
    """
    Parses, formats, compares and ranks one kind of tracked value.

    All methods are pure: no I/O, no exceptions for malformed input.
    Values are persisted through ``dump``/``load`` so callers never
    depend on a value's shape.
    """

    kind: ValueKind
    name: str
    description: str
    prefers_lower: bool = False

    @abstractmethod
    def parse(self, text: str) -> ParseResult[V]:
        ...

    @abstractmethod
    def format(self, value: V | None) -> str:
        ...

    @abstractmethod
    def compare(self, old: V | None, new: V | None) -> CompareResult:
        ...

    @abstractmethod
    def get_search_variations(self, text: str) -> list[str]:
        ...

    @abstractmethod
    def context_bonus(self, target: ParseResult[V], match: ElementMatch, parsed: ParseResult[V]) -> float:
        """Kind-specific bonus added to an element's ranker confidence."""

    @abstractmethod
    def dump(self, value: V) -> dict:
        ...

    @abstractmethod
    def load(self, data: dict | None) -> V | None:
        """Rebuild a value from stored data; ``None`` when it does not validate."""

    @abstractmethod
    def scalar(self, value: V) -> float | None:
        """Numeric projection used for best/worst/average in comparisons."""

    def format_difference(self, difference: float, reference: V | None = None) -> str:
        return _trim_number(difference)

    def rank_matches(self, target: str, matches: list[ElementMatch]) -> list[ElementMatch]:
        """Re-score candidates for ``target`` and sort them, best first."""
        parsed_target = self.parse(target)
        ranked = []
        for match in matches:
            bonus = self.context_bonus(parsed_target, match, self.parse(match.text))
            ranked.append(replace(match, confidence=float(max(0.0, min(100.0, match.confidence + bonus)))))
        # stable sort keeps document order on ties
        ranked.sort(key=lambda m: m.confidence, reverse=True)
        return ranked

    def is_better(self, candidate: V, best: V) -> bool:
        """True when ``candidate`` should replace ``best`` as the best value."""
        result = self.compare(best, candidate)
        if self.prefers_lower:
            return result.change_type == ChangeType.DECREASED
        return result.change_type == ChangeType.INCREASED

    def config_fields(self) -> list[ConfigField]:
        return []

    def validate_config(self, config: dict | None) -> bool:
        return True


def clamp_confidence(value: float) -> int:
    return int(max(0, min(100, round(value))))


def has_keyword(pattern: str, text: str) -> bool:
    return re.search(pattern, text, re.IGNORECASE) is not None


def _trim_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def parse_decimal(raw: str) -> float | None:
    """
    Parse a number written with either separator convention.

    ``1,234.56`` and ``1.234,56`` both give 1234.56. With both separators
    present the last one is the decimal point. A lone separator is a
    thousands separator when it repeats (``1.234.567``) or, for commas,
    when exactly three digits follow (``1,234``); otherwise it is decimal.
    """
    cleaned = re.sub(r"[\s  ']", "", raw or "")
    if not cleaned or not re.fullmatch(r"[0-9.,]*[0-9][0-9.,]*", cleaned):
        return None

    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        if cleaned.count(",") > 1 or re.fullmatch(r"[0-9]+,[0-9]{3}", cleaned):
            cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(",", ".")
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")

    try:
        return float(cleaned)
    except ValueError:
        return None
