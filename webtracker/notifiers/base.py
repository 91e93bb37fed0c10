"""Notifier contract."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from webtracker.models import ActionUrls, ChangeType, NotificationEvent
from webtracker.trackers.base import ConfigField

logger = logging.getLogger(__name__)


@dataclass
class NotifyResult:
    success: bool
    error: str | None = None
    message_id: str | None = None

    @classmethod
    def ok(cls, message_id: str | None = None) -> "NotifyResult":
        return cls(success=True, message_id=message_id)

    @classmethod
    def fail(cls, error: str) -> "NotifyResult":
        return cls(success=False, error=error)


class Notifier(ABC):
    """
    Delivers a NotificationEvent over one transport.

    ``initialize`` binds a per-product settings blob; ``notify`` then sends
    with it. Neither raises for transport or configuration problems.
    """

    kind: str
    name: str
    description: str

    @abstractmethod
    def initialize(self, config: dict) -> NotifyResult:
        ...

    @abstractmethod
    def notify(self, event: NotificationEvent) -> NotifyResult:
        ...

    def test(self, config: dict, base_url: str = "http://localhost:3000") -> bool:
        """Initialize with ``config`` and send a sample event."""
        init = self.initialize(config)
        if not init.success:
            logger.warning("%s test failed: %s", self.name, init.error)
            return False
        result = self.notify(sample_event(base_url))
        if not result.success:
            logger.warning("%s test failed: %s", self.name, result.error)
        return result.success

    def config_fields(self) -> list[ConfigField]:
        return []

    def validate_config(self, config: dict | None) -> bool:
        return True


def sample_event(base_url: str) -> NotificationEvent:
    """A fixed price-drop event used to test a notifier configuration."""
    return NotificationEvent(
        product_id="test",
        product_name="Test Product",
        change_type=ChangeType.DECREASED,
        old_value={"amount": 100.0, "currency": "USD"},
        new_value={"amount": 90.0, "currency": "USD"},
        formatted_old="$100.00",
        formatted_new="$90.00",
        difference="$10.00",
        action_urls=ActionUrls.for_product(base_url, "test"),
        source_id="test",
        source_url="https://example.com",
        source_store="Test Store",
    )


def change_icon(change_type: ChangeType) -> str:
    if change_type == ChangeType.DECREASED:
        return "📉"
    if change_type == ChangeType.INCREASED:
        return "📈"
    return "🔔"
