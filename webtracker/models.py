"""Data models for tracked products, their sources and notifications."""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def parse_datetime(value: Any) -> datetime | None:
    """Accept a datetime or ISO string; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class ValueKind(str, Enum):
    """Kind of value tracked on a page."""

    PRICE = "price"
    VERSION = "version"
    NUMBER = "number"


class NotifyRule(str, Enum):
    """When a detected change should produce a notification."""

    ANY_CHANGE = "any_change"
    DECREASE = "decrease"
    INCREASE = "increase"


class ThresholdType(str, Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


class SelectorType(str, Enum):
    CSS = "css"
    XPATH = "xpath"


class ChangeType(str, Enum):
    INCREASED = "increased"
    DECREASED = "decreased"
    UNCHANGED = "unchanged"


class LogStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    ACTIONED = "actioned"


class UserAction(str, Enum):
    """Actions a recipient can take from a notification."""

    DISMISSED = "dismissed"
    FALSE_POSITIVE = "false_positive"
    PURCHASED = "purchased"


@dataclass
class Threshold:
    """Minimum change required before a decrease/increase rule notifies."""

    type: ThresholdType
    value: float

    def to_dict(self) -> dict:
        return {"type": self.type.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict | None) -> "Threshold | None":
        if not data:
            return None
        return cls(type=ThresholdType(data.get("type", "absolute")), value=float(data["value"]))


class Record:
    """Conversion between entity dataclasses and plain store records."""

    DATETIME_FIELDS: tuple = ("created_at", "updated_at")
    ENUM_FIELDS: dict = {}

    def to_record(self) -> dict:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Threshold):
                value = value.to_dict()
            data[f.name] = value
        return data

    @classmethod
    def from_record(cls, data: dict):
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        for name in cls.DATETIME_FIELDS:
            if name in kwargs:
                kwargs[name] = parse_datetime(kwargs[name])
        for name, enum_cls in cls.ENUM_FIELDS.items():
            if kwargs.get(name) is not None:
                kwargs[name] = enum_cls(kwargs[name])
        return cls(**kwargs)


@dataclass
class Product(Record):
    """A logical item tracked across one or more sources."""

    name: str
    kind: ValueKind
    notify_on: NotifyRule = NotifyRule.ANY_CHANGE
    threshold: Threshold | None = None
    check_interval: str = "0 0 * * *"
    description: str | None = None
    last_checked: datetime | None = None
    next_check: datetime | None = None
    is_active: bool = True
    is_paused: bool = False
    best_source_id: str | None = None
    best_value: dict | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    DATETIME_FIELDS = ("last_checked", "next_check", "created_at", "updated_at")
    ENUM_FIELDS = {"kind": ValueKind, "notify_on": NotifyRule}

    @classmethod
    def from_record(cls, data: dict) -> "Product":
        data = dict(data)
        threshold = data.get("threshold")
        if isinstance(threshold, dict) or threshold is None:
            data["threshold"] = Threshold.from_dict(threshold)
        return super().from_record(data)


@dataclass
class Source(Record):
    """One URL + selector pair under a product."""

    product_id: str
    url: str
    selector: str
    selector_type: SelectorType = SelectorType.CSS
    store_name: str | None = None
    title: str = ""
    original_value: dict | None = None
    current_value: dict | None = None
    original_text: str | None = None
    current_text: str | None = None
    is_active: bool = True
    last_checked: datetime | None = None
    error_count: int = 0
    last_error: str | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    DATETIME_FIELDS = ("last_checked", "created_at", "updated_at")
    ENUM_FIELDS = {"selector_type": SelectorType}


@dataclass
class Observation(Record):
    """Immutable snapshot of a source value at one point in time."""

    source_id: str
    value: dict
    text: str
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    DATETIME_FIELDS = ("timestamp", "created_at", "updated_at")


@dataclass
class Comparison(Record):
    """Cross-source snapshot of a product's current values."""

    product_id: str
    sources: list
    best_source_id: str
    best_value: dict
    best_scalar: float | None = None
    worst_scalar: float | None = None
    average_scalar: float | None = None
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    DATETIME_FIELDS = ("timestamp", "created_at", "updated_at")


@dataclass
class NotificationConfig(Record):
    """Per-product settings for one notifier kind."""

    product_id: str
    notifier_type: str
    config: dict = field(default_factory=dict)
    is_enabled: bool = True
    rate_limit_hours: float | None = None
    last_sent: datetime | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    DATETIME_FIELDS = ("last_sent", "created_at", "updated_at")


@dataclass
class NotificationLog(Record):
    """One notification attempt or one user action on a product."""

    product_id: str
    type: str
    status: LogStatus
    action: UserAction | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    DATETIME_FIELDS = ("timestamp", "created_at", "updated_at")
    ENUM_FIELDS = {"status": LogStatus, "action": UserAction}


@dataclass
class FalsePositive(Record):
    """A detection the user reported as wrong, kept for selector debugging."""

    source_id: str
    detected_text: str
    detected_value: dict | None = None
    actual_text: str | None = None
    html_context: str = ""
    screenshot: str | None = None
    notes: str | None = None
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    DATETIME_FIELDS = ("timestamp", "created_at", "updated_at")


@dataclass
class ElementMatch:
    """Candidate page element for a searched value."""

    selector: str
    text: str
    html: str
    context: str
    confidence: float = 0.0

    def to_dict(self) -> dict:
        return {
            "selector": self.selector,
            "text": self.text,
            "html": self.html,
            "context": self.context,
            "confidence": self.confidence,
        }


# ── Notification event ────────────────────────────────────────────────────────


@dataclass
class SourceSnapshot:
    """A source's current value as shown in a multi-source notification."""

    source_id: str
    store_name: str
    value: dict
    formatted_value: str
    url: str
    changed: bool = False


@dataclass
class Savings:
    amount: float
    percentage: float


@dataclass
class ComparisonPayload:
    best: SourceSnapshot
    all_sources: list[SourceSnapshot]
    savings: Savings | None = None


@dataclass
class ActionUrls:
    dismiss: str
    false_positive: str
    purchased: str
    view_product: str

    @classmethod
    def for_product(cls, base_url: str, product_id: str) -> "ActionUrls":
        base = base_url.rstrip("/")
        return cls(
            dismiss=f"{base}/actions/dismiss/{product_id}",
            false_positive=f"{base}/actions/false-positive/{product_id}",
            purchased=f"{base}/actions/purchased/{product_id}",
            view_product=f"{base}/products/{product_id}",
        )


@dataclass
class NotificationEvent:
    """Everything a notifier needs to describe one detected change."""

    product_id: str
    product_name: str
    change_type: ChangeType
    old_value: dict | None
    new_value: dict | None
    formatted_old: str
    formatted_new: str
    difference: str
    action_urls: ActionUrls
    source_id: str | None = None
    source_url: str | None = None
    source_store: str | None = None
    comparison: ComparisonPayload | None = None
    threshold: Threshold | None = None
    screenshot: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "product": {"id": self.product_id, "name": self.product_name},
            "changeType": self.change_type.value,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "formattedOld": self.formatted_old,
            "formattedNew": self.formatted_new,
            "difference": self.difference,
            "actionUrls": {
                "dismiss": self.action_urls.dismiss,
                "falsePositive": self.action_urls.false_positive,
                "purchased": self.action_urls.purchased,
                "viewProduct": self.action_urls.view_product,
            },
        }
        if self.source_id is not None:
            data["source"] = {
                "id": self.source_id,
                "url": self.source_url,
                "storeName": self.source_store,
            }
        if self.comparison is not None:
            data["comparison"] = {
                "best": _snapshot_dict(self.comparison.best),
                "allSources": [_snapshot_dict(s) for s in self.comparison.all_sources],
                "savings": (
                    {
                        "amount": self.comparison.savings.amount,
                        "percentage": self.comparison.savings.percentage,
                    }
                    if self.comparison.savings
                    else None
                ),
            }
        if self.threshold is not None:
            data["threshold"] = self.threshold.to_dict()
        if self.screenshot:
            data["screenshot"] = self.screenshot
        return data


def _snapshot_dict(snapshot: SourceSnapshot) -> dict:
    return {
        "sourceId": snapshot.source_id,
        "storeName": snapshot.store_name,
        "value": snapshot.value,
        "formattedValue": snapshot.formatted_value,
        "url": snapshot.url,
        "changed": snapshot.changed,
    }
