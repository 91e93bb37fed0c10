"""Price tracker with multi-currency support."""

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

# Detection order matters: "C$" must win over "$", "$" over a bare "R".
CURRENCIES: list[tuple[str, str]] = [
    ("C$", "CAD"),
    ("A$", "AUD"),
    ("€", "EUR"),
    ("£", "GBP"),
    ("¥", "JPY"),
    ("₹", "INR"),
    ("₽", "RUB"),
    ("$", "USD"),
    ("kr", "SEK"),
    ("R", "ZAR"),
]
SYMBOL_FOR = {code: symbol for symbol, code in CURRENCIES}
CURRENCY_CODES = [code for _, code in CURRENCIES]

_AMOUNT = r"([0-9]+(?:[,.\s][0-9]{3})*(?:[.,][0-9]{1,2})?)"
_SYMBOL = r"(?:C\$|A\$|(?<![A-Za-z])[Kk]r\.?|[$€£¥₹₽])"
# A bare "R" also prefixes model numbers, so it is only tried after the other symbols and codes.
_RAND = r"(?<![A-Za-z0-9])R(?=\s?[0-9])"
_CODE = r"(?:" + "|".join(CURRENCY_CODES) + r")"

# Most specific first.
PRICE_PATTERNS = [
    re.compile(_SYMBOL + r"\s*" + _AMOUNT),
    re.compile(_AMOUNT + r"\s*" + _SYMBOL),
    re.compile(r"\b" + _CODE + r"\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(_AMOUNT + r"\s*" + _CODE + r"\b", re.IGNORECASE),
    re.compile(_RAND + r"\s*" + _AMOUNT),
    re.compile(r"([0-9]+(?:[,\s][0-9]{3})*[.,][0-9]{1,2})(?![0-9])"),
    re.compile(r"([0-9]+(?:,[0-9]{3})+)"),
    re.compile(r"([0-9]+(?:\.[0-9]+)?)"),
]

PRICE_CONTEXT = r"\b(price|cost|total|sale|now|only|deal)\b"
PRICE_MARKUP = r"class\s*=\s*[\"'][^\"']*price|data-price|itemprop\s*=\s*[\"']price"

MAX_PLAUSIBLE_AMOUNT = 1_000_000

# 1,234.56 <-> 1.234,56
SWAP_SEPARATORS = str.maketrans({",": ".", ".": ","})


@dataclass(frozen=True)
class Price:
    amount: float
    currency: str = "USD"


def _currency_from_symbol(text: str) -> str | None:
    for symbol, code in CURRENCIES:
        if symbol == "R":
            if re.search(r"(?<![A-Za-z0-9])R\s?[0-9]", text):
                return code
        elif symbol == "kr":
            if re.search(r"(?<![A-Za-z])kr(?![A-Za-z])", text, re.IGNORECASE):
                return code
        elif symbol in text:
            return code
    return None


def detect_currency(text: str) -> str | None:
    """Currency code from a symbol or ISO code in ``text``."""
    code = _currency_from_symbol(text)
    if code:
        return code
    upper = text.upper()
    for code in CURRENCY_CODES:
        if re.search(r"\b" + code + r"\b", upper):
            return code
    return None


def has_currency_symbol(text: str) -> bool:
    return _currency_from_symbol(text) is not None


class PriceTracker(ValuePlugin[Price]):
    """Track prices; lower is better."""

    kind = ValueKind.PRICE
    name = "Price Tracker"
    description = "Track prices with multi-currency support"
    prefers_lower = True

    def __init__(self, default_currency: str = "USD"):
        self.default_currency = default_currency

    def parse(self, text: str) -> ParseResult[Price]:
        if not text or not text.strip():
            return ParseResult.failed(text or "")
        cleaned = text.strip()

        for pattern in PRICE_PATTERNS:
            match = pattern.search(cleaned)
            if not match:
                continue
            amount = parse_decimal(match.group(1))
            if amount is None or amount <= 0:
                continue
            currency = detect_currency(match.group(0)) or detect_currency(cleaned)
            value = Price(amount=amount, currency=currency or self.default_currency)
            return ParseResult(
                success=True,
                value=value,
                normalized=self.format(value),
                confidence=self._confidence(cleaned, amount),
                metadata={"original_format": match.group(1), "detected_currency": currency},
            )

        return ParseResult.failed(text)

    def format(self, value: Price | None) -> str:
        if value is None:
            return ""
        symbol = SYMBOL_FOR.get(value.currency)
        if symbol is None:
            return f"{value.currency} {value.amount:.2f}"
        return f"{symbol}{value.amount:.2f}"

    def compare(self, old: Price | None, new: Price | None) -> CompareResult:
        if old is None or new is None or old.amount <= 0 or new.amount <= 0:
            return CompareResult.unchanged()

        if abs(new.amount - old.amount) < 1e-9:
            return CompareResult.unchanged(percent_change=0.0)

        difference = new.amount - old.amount
        return CompareResult(
            changed=True,
            change_type=ChangeType.INCREASED if difference > 0 else ChangeType.DECREASED,
            difference=abs(difference),
            percent_change=abs(difference / old.amount * 100),
        )

    def get_search_variations(self, text: str) -> list[str]:
        variations = [text]
        parsed = self.parse(text)
        if parsed.success:
            amount = parsed.value.amount
            plain = _plain(amount)
            fixed = f"{amount:.2f}"
            for symbol, _ in CURRENCIES:
                variations += [f"{symbol}{plain}", f"{symbol}{fixed}", f"{plain}{symbol}"]
            grouped = f"{amount:,.2f}"
            variations += [plain, fixed, grouped, grouped.translate(SWAP_SEPARATORS)]
            if amount >= 1000 and amount.is_integer():
                variations.append(f"{amount:,.0f}")
        return list(dict.fromkeys(variations))

    def context_bonus(self, target: ParseResult[Price], match: ElementMatch, parsed: ParseResult[Price]) -> float:
        if not parsed.success:
            # no positive amount in the element: not a price
            return -100.0
        bonus = 0.0
        if has_keyword(PRICE_MARKUP, match.html):
            bonus += 20
        if has_currency_symbol(match.text):
            bonus += 15
        if target.success and abs(target.value.amount - parsed.value.amount) < 0.01:
            bonus += 30
        return bonus

    def dump(self, value: Price) -> dict:
        return {"amount": value.amount, "currency": value.currency}

    def load(self, data: dict | None) -> Price | None:
        if not isinstance(data, dict):
            return None
        amount = data.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            return None
        currency = data.get("currency") or self.default_currency
        if not isinstance(currency, str):
            return None
        return Price(amount=float(amount), currency=currency)

    def scalar(self, value: Price) -> float | None:
        return value.amount

    def format_difference(self, difference: float, reference: Price | None = None) -> str:
        currency = reference.currency if reference else self.default_currency
        return self.format(Price(amount=difference, currency=currency))

    def config_fields(self) -> list[ConfigField]:
        return [
            ConfigField(
                "default_currency",
                "select",
                "Default Currency",
                default="USD",
                options=[(code, f"{code} ({SYMBOL_FOR[code]})") for code in ("USD", "EUR", "GBP", "JPY", "CAD", "AUD")],
            ),
            ConfigField("precision", "number", "Decimal Precision", default=2),
        ]

    def validate_config(self, config: dict | None) -> bool:
        if not config:
            return True
        precision = config.get("precision")
        if precision is not None and not 0 <= precision <= 4:
            return False
        currency = config.get("default_currency")
        if currency and currency not in CURRENCY_CODES:
            return False
        return True

    def _confidence(self, text: str, amount: float) -> int:
        confidence = 50
        if has_currency_symbol(text):
            confidence += 20
        if 0 < amount < 100_000:
            confidence += 15
        if re.search(r"[.,][0-9]{2}(?![0-9])", text):
            confidence += 10
        if has_keyword(PRICE_CONTEXT, text):
            confidence += 5
        if amount > MAX_PLAUSIBLE_AMOUNT:
            confidence -= 15
        return clamp_confidence(confidence)


def _plain(amount: float) -> str:
    return str(int(amount)) if amount.is_integer() else repr(amount)
