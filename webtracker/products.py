"""Create, change and remove tracked products and their sources."""

import logging
from urllib.parse import urlparse

from webtracker.errors import DuplicateSourceError, ProductNotFoundError, SourceNotFoundError
from webtracker.models import (
    FalsePositive,
    LogStatus,
    NotificationConfig,
    NotificationLog,
    NotifyRule,
    Observation,
    Product,
    SelectorType,
    Source,
    Threshold,
    UserAction,
    ValueKind,
)
from webtracker.registry import PluginRegistry
from webtracker.storage import Store

logger = logging.getLogger(__name__)

UNKNOWN_STORE = "Unknown Store"

PRODUCT_FIELDS = ("name", "description", "notify_on", "threshold", "check_interval", "is_active", "is_paused")
SOURCE_FIELDS = ("url", "selector", "selector_type", "store_name", "is_active")


def store_name_from_url(url: str) -> str:
    """Host name without ``www.``; ``Unknown Store`` when the URL has none."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return UNKNOWN_STORE
    if not host:
        return UNKNOWN_STORE
    return host[4:] if host.startswith("www.") else host


class ProductManager:
    """Record-level operations on products, keeping their invariants."""

    def __init__(self, store: Store, registry: PluginRegistry, default_check_interval: str = "0 0 * * *"):
        self.store = store
        self.registry = registry
        self.default_check_interval = default_check_interval

    # ── Products ──────────────────────────────────────────────────────────────

    def create_product(
        self,
        name: str,
        kind,
        sources: list[dict] | None = None,
        notifications: list[dict] | None = None,
        notify_on=NotifyRule.ANY_CHANGE,
        threshold: Threshold | dict | None = None,
        check_interval: str | None = None,
        description: str | None = None,
    ) -> Product:
        kind = ValueKind(kind)
        self.registry.value_plugin(kind)
        for entry in notifications or []:
            self.registry.notifier(entry["notifier_type"])

        product = Product(
            name=name,
            kind=kind,
            notify_on=NotifyRule(notify_on),
            threshold=_threshold(threshold),
            check_interval=check_interval or self.default_check_interval,
            description=description,
        )
        self.store.insert("products", product.to_record())

        for entry in sources or []:
            self.add_source(
                product.id,
                entry["url"],
                entry["selector"],
                selector_type=entry.get("selector_type", SelectorType.CSS),
                store_name=entry.get("store_name"),
            )
        for entry in notifications or []:
            self.add_notification(
                product.id,
                entry["notifier_type"],
                entry.get("config") or {},
                is_enabled=entry.get("is_enabled", True),
                rate_limit_hours=entry.get("rate_limit_hours"),
            )

        logger.info("Created product: %s (%s)", product.name, product.id)
        return product

    def get_product(self, product_id: str) -> Product:
        record = self.store.get("products", product_id)
        if record is None:
            raise ProductNotFoundError(f"Product not found: {product_id}")
        return Product.from_record(record)

    def list_products(self, active: bool | None = None, kind=None) -> list[Product]:
        kind = ValueKind(kind).value if kind is not None else None

        def matches(record: dict) -> bool:
            if active is not None and bool(record.get("is_active")) != active:
                return False
            return kind is None or record.get("kind") == kind

        return [Product.from_record(r) for r in self.store.find("products", matches)]

    def update_product(self, product_id: str, **changes) -> Product:
        self.get_product(product_id)
        unknown = set(changes) - set(PRODUCT_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update product fields: {', '.join(sorted(unknown))}")
        if "notify_on" in changes:
            changes["notify_on"] = NotifyRule(changes["notify_on"])
        if "threshold" in changes:
            threshold = _threshold(changes["threshold"])
            changes["threshold"] = threshold.to_dict() if threshold else None
        record = self.store.update("products", product_id, **changes)
        logger.info("Updated product: %s (%s)", record["name"], product_id)
        return Product.from_record(record)

    def delete_product(self, product_id: str) -> None:
        """Delete a product with its sources, their history and every record tied to it."""
        self.get_product(product_id)
        source_ids = {s.id for s in self.sources_for(product_id)}

        def owned(record: dict) -> bool:
            return record.get("product_id") == product_id

        def from_sources(record: dict) -> bool:
            return record.get("source_id") in source_ids

        self.store.delete_where("history", from_sources)
        self.store.delete_where("false_positives", from_sources)
        for kind in ("sources", "comparisons", "notification_configs", "notification_logs"):
            self.store.delete_where(kind, owned)
        self.store.delete("products", product_id)
        logger.info("Deleted product: %s", product_id)

    # ── Sources ───────────────────────────────────────────────────────────────

    def sources_for(self, product_id: str) -> list[Source]:
        return [Source.from_record(r) for r in self.store.find("sources", lambda r: r["product_id"] == product_id)]

    def get_source(self, source_id: str) -> Source:
        record = self.store.get("sources", source_id)
        if record is None:
            raise SourceNotFoundError(f"Source not found: {source_id}")
        return Source.from_record(record)

    def add_source(
        self,
        product_id: str,
        url: str,
        selector: str,
        selector_type=SelectorType.CSS,
        store_name: str | None = None,
    ) -> Source:
        self.get_product(product_id)
        if any(s.url == url for s in self.sources_for(product_id)):
            raise DuplicateSourceError(f"Product {product_id} already tracks {url}")
        source = Source(
            product_id=product_id,
            url=url,
            selector=selector,
            selector_type=SelectorType(selector_type),
            store_name=store_name or store_name_from_url(url),
        )
        self.store.insert("sources", source.to_record())
        logger.info("Added source %s to product %s", url, product_id)
        return source

    def update_source(self, source_id: str, **changes) -> Source:
        source = self.get_source(source_id)
        unknown = set(changes) - set(SOURCE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update source fields: {', '.join(sorted(unknown))}")
        if "url" in changes and changes["url"] != source.url:
            if any(s.url == changes["url"] for s in self.sources_for(source.product_id)):
                raise DuplicateSourceError(f"Product {source.product_id} already tracks {changes['url']}")
        if "selector_type" in changes:
            changes["selector_type"] = SelectorType(changes["selector_type"])
        return Source.from_record(self.store.update("sources", source_id, **changes))

    def remove_source(self, source_id: str) -> None:
        source = self.get_source(source_id)
        self.store.delete_where("history", lambda r: r.get("source_id") == source_id)
        self.store.delete_where("false_positives", lambda r: r.get("source_id") == source_id)
        self.store.delete("sources", source_id)

        product = self.get_product(source.product_id)
        if product.best_source_id == source_id:
            self.store.update("products", product.id, best_source_id=None, best_value=None)
        logger.info("Removed source %s from product %s", source.url, source.product_id)

    def reactivate_source(self, source_id: str) -> Source:
        self.get_source(source_id)
        record = self.store.update("sources", source_id, is_active=True, error_count=0, last_error=None)
        logger.info("Reactivated source %s", record["url"])
        return Source.from_record(record)

    def history(self, source_id: str, limit: int | None = None) -> list[Observation]:
        """Observations for a source, oldest first; ``limit`` keeps the newest."""
        records = self.store.find("history", lambda r: r["source_id"] == source_id)
        observations = sorted((Observation.from_record(r) for r in records), key=lambda o: o.timestamp)
        if limit is not None:
            observations = observations[-limit:] if limit > 0 else []
        return observations

    # ── Notifications ─────────────────────────────────────────────────────────

    def notifications_for(self, product_id: str) -> list[NotificationConfig]:
        return [
            NotificationConfig.from_record(r)
            for r in self.store.find("notification_configs", lambda r: r["product_id"] == product_id)
        ]

    def add_notification(
        self,
        product_id: str,
        notifier_type: str,
        config: dict,
        is_enabled: bool = True,
        rate_limit_hours: float | None = None,
    ) -> NotificationConfig:
        self.registry.notifier(notifier_type)
        notification = NotificationConfig(
            product_id=product_id,
            notifier_type=notifier_type,
            config=config,
            is_enabled=is_enabled,
            rate_limit_hours=rate_limit_hours,
        )
        self.store.insert("notification_configs", notification.to_record())
        return notification

    def record_action(
        self,
        product_id: str,
        action,
        source_id: str | None = None,
        detected_text: str | None = None,
        actual_text: str | None = None,
        html_context: str = "",
        notes: str | None = None,
    ) -> NotificationLog:
        """
        Record a user's response to a notification.

        ``purchased`` also pauses the product. ``false_positive`` with a
        ``source_id`` keeps a FalsePositive record of what was detected.
        """
        action = UserAction(action)
        product = self.get_product(product_id)

        if action == UserAction.FALSE_POSITIVE and source_id:
            source = self.get_source(source_id)
            report = FalsePositive(
                source_id=source.id,
                detected_text=detected_text if detected_text is not None else source.current_text or "",
                detected_value=source.current_value,
                actual_text=actual_text,
                html_context=html_context,
                notes=notes,
            )
            self.store.insert("false_positives", report.to_record())

        if action == UserAction.PURCHASED:
            self.store.update("products", product.id, is_paused=True)

        log = NotificationLog(
            product_id=product.id,
            type="feedback" if source_id else "action",
            status=LogStatus.ACTIONED,
            action=action,
        )
        self.store.insert("notification_logs", log.to_record())
        logger.info("Action %s recorded for product %s", action.value, product.name)
        return log


def _threshold(value: Threshold | dict | None) -> Threshold | None:
    if value is None or isinstance(value, Threshold):
        return value
    return Threshold.from_dict(value)
