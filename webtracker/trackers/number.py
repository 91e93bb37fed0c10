"""Generic number tracker (stock levels, scores, counts)."""

import re
from dataclasses import dataclass

from webtracker.models import ChangeType, ElementMatch, ValueKind
from webtracker.trackers.base import (
    CompareResult,
    ConfigField,
    ParseResult,
    ValuePlugin,
    clamp_confidence,
    has_keyword,
    parse_decimal,
)

_SEP = r"[,.  ]"
_NUMBER = r"((?<![0-9])-?[0-9]+(?:" + _SEP + r"[0-9]{3})*(?:[.,][0-9]+)?)"

# Most specific first; the second group, when present, is the unit.
NUMBER_PATTERNS = [
    re.compile(_NUMBER + r"\s*([A-Za-z%]+)"),
    re.compile(r"((?<![0-9])-?[0-9]+(?:" + _SEP + r"[0-9]{3})*[.,][0-9]+)"),
    re.compile(r"((?<![0-9])-?[0-9]+(?:" + _SEP + r"[0-9]{3})+)"),
    re.compile(r"((?<![0-9])-?[0-9]+)"),
]

NUMBER_CONTEXT = r"\b(stock|inventory|count|total|quantity|level|score|rating|available|remaining|items?)\b"
NUMBER_MARKUP = r"count|total|amount|quantity|level|score|rating|stock"
NUMBER_DATA_ATTRS = r"data-count|data-value|data-number|data-quantity"

NUMBER_TYPES = ("any", "integer", "decimal", "percentage")


@dataclass(frozen=True)
class Number:
    value: float
    unit: str | None = None


class NumberTracker(ValuePlugin[Number]):
    """Track plain numbers; higher is better."""

    kind = ValueKind.NUMBER
    name = "Number Tracker"
    description = "Track generic numbers (stock levels, scores, counts)"

    def parse(self, text: str) -> ParseResult[Number]:
        if not text or not text.strip():
            return ParseResult.failed(text or "")
        cleaned = text.strip()

        for pattern in NUMBER_PATTERNS:
            match = pattern.search(cleaned)
            if not match:
                continue
            value = parse_decimal(match.group(1).lstrip("-"))
            if value is None:
                continue
            if match.group(1).startswith("-"):
                value = -value
            unit = match.group(2) if pattern.groups > 1 else None
            number = Number(value=value, unit=unit)
            return ParseResult(
                success=True,
                value=number,
                normalized=self.format(number),
                confidence=self._confidence(cleaned, value, unit),
                metadata={
                    "has_unit": unit is not None,
                    "is_integer": value.is_integer(),
                    "original_format": match.group(0),
                },
            )

        return ParseResult.failed(text)

    def format(self, value: Number | None) -> str:
        if value is None:
            return ""
        formatted = _format_number(value.value)
        return f"{formatted} {value.unit}" if value.unit else formatted

    def compare(self, old: Number | None, new: Number | None) -> CompareResult:
        if old is None or new is None:
            return CompareResult.unchanged()

        if abs(new.value - old.value) < 1e-9:
            return CompareResult.unchanged(percent_change=0.0)

        difference = new.value - old.value
        percent = abs(difference / old.value * 100) if old.value != 0 else 100.0
        return CompareResult(
            changed=True,
            change_type=ChangeType.INCREASED if difference > 0 else ChangeType.DECREASED,
            difference=abs(difference),
            percent_change=percent,
        )

    def get_search_variations(self, text: str) -> list[str]:
        variations = [text]
        parsed = self.parse(text)
        if parsed.success:
            value, unit = parsed.value.value, parsed.value.unit
            plain = _format_number(value)
            variations += [plain, f"{value:.0f}" if value.is_integer() else f"{value:.2f}"]
            if abs(value) >= 1000:
                grouped = f"{value:,.0f}" if value.is_integer() else f"{value:,.2f}"
                variations += [grouped, grouped.translate(str.maketrans({",": ".", ".": ","}))]
            if unit:
                variations += [f"{plain} {unit}", f"{plain}{unit}", f"{value:.0f} {unit}"]
            if not value.is_integer():
                variations += [f"{value:.1f}", f"{value:.2f}"]
        return list(dict.fromkeys(variations))

    def context_bonus(self, target: ParseResult[Number], match: ElementMatch, parsed: ParseResult[Number]) -> float:
        bonus = 0.0
        if has_keyword(NUMBER_MARKUP, match.html):
            bonus += 15
        if has_keyword(NUMBER_DATA_ATTRS, match.html):
            bonus += 20
        if target.success and parsed.success:
            if abs(target.value.value - parsed.value.value) < 0.01:
                bonus += 25
            target_unit, match_unit = target.value.unit, parsed.value.unit
            if target_unit and match_unit and target_unit.lower() == match_unit.lower():
                bonus += 15
        return bonus

    def dump(self, value: Number) -> dict:
        return {"value": value.value, "unit": value.unit}

    def load(self, data: dict | None) -> Number | None:
        if not isinstance(data, dict):
            return None
        raw = data.get("value")
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            return None
        unit = data.get("unit")
        if unit is not None and not isinstance(unit, str):
            return None
        return Number(value=float(raw), unit=unit or None)

    def scalar(self, value: Number) -> float | None:
        return value.value

    def format_difference(self, difference: float, reference: Number | None = None) -> str:
        unit = reference.unit if reference else None
        return self.format(Number(value=difference, unit=unit))

    def config_fields(self) -> list[ConfigField]:
        return [
            ConfigField(
                "number_type",
                "select",
                "Number Type",
                default="any",
                options=[
                    ("any", "Any Number"),
                    ("integer", "Integers Only"),
                    ("decimal", "Decimals Only"),
                    ("percentage", "Percentages"),
                ],
            ),
            ConfigField("decimal_precision", "number", "Decimal Precision", default=2),
        ]

    def validate_config(self, config: dict | None) -> bool:
        if not config:
            return True
        number_type = config.get("number_type")
        if number_type is not None and number_type not in NUMBER_TYPES:
            return False
        precision = config.get("decimal_precision")
        if precision is not None and not 0 <= precision <= 10:
            return False
        return True

    def _confidence(self, text: str, value: float, unit: str | None) -> int:
        confidence = 40
        if unit:
            confidence += 20
        if 0 <= value <= 1_000_000:
            confidence += 15
        if value.is_integer():
            confidence += 10
        if has_keyword(NUMBER_CONTEXT, text):
            confidence += 15
        # ids and timestamps
        if value > 1_000_000_000:
            confidence -= 25
        if 0 < value < 1:
            confidence -= 5
        return clamp_confidence(confidence)


def _format_number(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")
