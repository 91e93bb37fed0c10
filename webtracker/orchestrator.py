"""Track every source of a product, reconcile the best value, notify."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from webtracker.comparator import build_comparison, build_event, current_values, select_best, should_notify
from webtracker.config import Settings
from webtracker.errors import ProductNotFoundError
from webtracker.models import (
    LogStatus,
    NotificationConfig,
    NotificationEvent,
    NotificationLog,
    Product,
    Source,
    utcnow,
)
from webtracker.notifiers.base import Notifier, NotifyResult
from webtracker.registry import PluginRegistry
from webtracker.renderer import Renderer
from webtracker.schedule import next_check
from webtracker.source_tracker import SourceTracker, TrackingResult
from webtracker.storage import Store

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    notifier_type: str
    success: bool
    error: str | None = None
    rate_limited: bool = False


@dataclass
class ProductResult:
    """Everything one product's tracking run produced."""

    product_id: str
    product_name: str = ""
    skipped: bool = False
    results: list[TrackingResult] = field(default_factory=list)
    event: NotificationEvent | None = None
    dispatches: list[DispatchResult] = field(default_factory=list)

    @property
    def changed(self) -> list[TrackingResult]:
        return [r for r in self.results if r.success and r.changed]

    @property
    def failed(self) -> list[TrackingResult]:
        return [r for r in self.results if not r.success and not r.skipped]

    @property
    def notified(self) -> bool:
        return any(d.success for d in self.dispatches)


class ProductOrchestrator:
    """
    Runs one product through a tracking cycle.

    Sources are tracked one after another; the best value is recomputed
    only after every source has been updated. Plugins are resolved before
    any source is touched, so a missing plugin fails the whole product.
    """

    def __init__(
        self,
        store: Store,
        registry: PluginRegistry,
        renderer: Renderer,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings
        self.clock = clock
        self.source_tracker = SourceTracker(store, renderer, settings, clock)

    def track_product(self, product_id: str) -> ProductResult:
        record = self.store.get("products", product_id)
        if record is None:
            raise ProductNotFoundError(f"Product not found: {product_id}")
        product = Product.from_record(record)
        outcome = ProductResult(product_id=product.id, product_name=product.name)

        if not product.is_active or product.is_paused:
            logger.info("Skipping inactive/paused product: %s", product.name)
            outcome.skipped = True
            return outcome

        plugin = self.registry.value_plugin(product.kind)
        configs = [c for c in self._configs(product.id) if c.is_enabled]
        notifiers = {c.notifier_type: self.registry.notifier(c.notifier_type) for c in configs}

        for source in self._sources(product.id):
            if not source.is_active:
                logger.debug("Skipping inactive source: %s", source.url)
                continue
            outcome.results.append(self.source_tracker.track(source, plugin))

        now = self.clock()
        self.store.update(
            "products",
            product.id,
            last_checked=now,
            next_check=next_check(product.check_interval, now),
        )

        sources = self._sources(product.id)
        entries = current_values(plugin, sources)
        best = select_best(plugin, entries)
        if best is not None:
            self.store.update(
                "products",
                product.id,
                best_source_id=best.source.id,
                best_value=plugin.dump(best.value),
            )
            logger.info("Best value for %s: %s at %s", product.name, plugin.format(best.value), best.source.store_name)

        comparison = build_comparison(plugin, product.id, entries)
        if comparison is not None:
            self.store.insert("comparisons", comparison.to_record())

        changed = outcome.changed
        if changed and should_notify(product, changed):
            outcome.event = build_event(product, plugin, changed, sources, self.settings.base_url)
            outcome.dispatches = self.dispatch(product, outcome.event, configs, notifiers)
        elif changed:
            logger.info("Change on %s did not meet the %s rule", product.name, product.notify_on.value)

        logger.info(
            "Tracked %s: %d sources, %d changed, %d failed",
            product.name,
            len(outcome.results),
            len(changed),
            len(outcome.failed),
        )
        return outcome

    def dispatch(
        self,
        product: Product,
        event: NotificationEvent,
        configs: list[NotificationConfig],
        notifiers: dict[str, Notifier],
    ) -> list[DispatchResult]:
        """Send ``event`` through every enabled config; one failure never blocks the rest."""
        results = []
        for config in configs:
            if self._rate_limited(config):
                logger.debug(
                    "Skipping %s notification for %s: sent within the last %s hours",
                    config.notifier_type,
                    product.name,
                    config.rate_limit_hours,
                )
                results.append(DispatchResult(config.notifier_type, success=False, rate_limited=True))
                continue

            notifier = notifiers[config.notifier_type]
            try:
                result = notifier.initialize(config.config)
                if result.success:
                    result = notifier.notify(event)
            except Exception as e:
                logger.exception("%s notifier raised for %s", config.notifier_type, product.name)
                result = NotifyResult.fail(str(e))

            self.store.insert(
                "notification_logs",
                NotificationLog(
                    product_id=product.id,
                    type=config.notifier_type,
                    status=LogStatus.SENT if result.success else LogStatus.FAILED,
                    error=result.error,
                    timestamp=self.clock(),
                ).to_record(),
            )
            if result.success:
                self.store.update("notification_configs", config.id, last_sent=self.clock())
                logger.info("Sent %s notification for %s", config.notifier_type, product.name)
            else:
                logger.error("Failed to send %s notification for %s: %s", config.notifier_type, product.name, result.error)
            results.append(DispatchResult(config.notifier_type, result.success, result.error))
        return results

    def _rate_limited(self, config: NotificationConfig) -> bool:
        if not config.rate_limit_hours or config.last_sent is None:
            return False
        return self.clock() - config.last_sent < timedelta(hours=config.rate_limit_hours)

    def _sources(self, product_id: str) -> list[Source]:
        return [Source.from_record(r) for r in self.store.find("sources", lambda r: r["product_id"] == product_id)]

    def _configs(self, product_id: str) -> list[NotificationConfig]:
        return [
            NotificationConfig.from_record(r)
            for r in self.store.find("notification_configs", lambda r: r["product_id"] == product_id)
        ]
