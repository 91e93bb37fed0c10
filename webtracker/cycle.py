"""One tracking cycle over every due product."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from webtracker.models import Product, utcnow
from webtracker.orchestrator import ProductOrchestrator
from webtracker.rate_limiter import RateLimiter
from webtracker.storage import Store

logger = logging.getLogger(__name__)


@dataclass
class ProductOutcome:
    product_id: str
    name: str
    success: bool
    skipped: bool = False
    changes: int = 0
    errors: int = 0
    notified: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "name": self.name,
            "success": self.success,
            "skipped": self.skipped,
            "changes": self.changes,
            "errors": self.errors,
            "notified": self.notified,
            "error": self.error,
        }


@dataclass
class CycleSummary:
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[ProductOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def changed(self) -> int:
        return sum(1 for o in self.outcomes if o.changes)

    @property
    def errored(self) -> int:
        return sum(1 for o in self.outcomes if o.error is not None)

    def to_dict(self) -> dict:
        return {
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "changed": self.changed,
            "errored": self.errored,
            "results": [o.to_dict() for o in self.outcomes],
        }


class CycleRunner:
    """
    Runs every active, due product through the orchestrator, one at a time.

    Products with a future ``next_check`` are not due. The rate limiter
    spaces products apart. Anything a product raises becomes that
    product's error outcome; the cycle carries on.
    """

    def __init__(
        self,
        store: Store,
        orchestrator: ProductOrchestrator,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.rate_limiter = rate_limiter or RateLimiter(1.0)
        self.clock = clock

    def due_products(self) -> list[Product]:
        due, _ = self._load_due()
        return due

    def _load_due(self) -> tuple[list[Product], list[ProductOutcome]]:
        """Due products, plus an error outcome for each active record that cannot be loaded."""
        now = self.clock()
        due, unloadable = [], []
        for record in self.store.find("products", lambda r: r.get("is_active")):
            try:
                product = Product.from_record(record)
            except Exception as e:
                logger.exception("Failed to load product %s", record.get("id"))
                unloadable.append(
                    ProductOutcome(record.get("id", ""), record.get("name", ""), success=False, errors=1, error=str(e))
                )
                continue
            if product.next_check is not None and product.next_check > now:
                logger.debug("Skipping product %s - not due until %s", product.name, product.next_check)
                continue
            due.append(product)
        return due, unloadable

    def run(self) -> CycleSummary:
        summary = CycleSummary(started_at=self.clock())
        products, unloadable = self._load_due()
        summary.outcomes.extend(unloadable)
        logger.info("Starting tracking cycle for %d products", len(products) + len(unloadable))

        self.rate_limiter.reset()
        for product in products:
            self.rate_limiter.acquire()
            summary.outcomes.append(self._run_product(product))

        summary.finished_at = self.clock()
        logger.info(
            "Tracking cycle completed: %d/%d successful, %d changed, %d errored",
            summary.succeeded,
            summary.processed,
            summary.changed,
            summary.errored,
        )
        return summary

    def _run_product(self, product: Product) -> ProductOutcome:
        try:
            result = self.orchestrator.track_product(product.id)
        except Exception as e:
            logger.exception("Failed to track product %s", product.name)
            return ProductOutcome(product.id, product.name, success=False, errors=1, error=str(e))

        if result.skipped:
            return ProductOutcome(product.id, product.name, success=True, skipped=True)
        tracked = [r for r in result.results if not r.skipped]
        return ProductOutcome(
            product_id=product.id,
            name=product.name,
            success=any(r.success for r in tracked) or not tracked,
            changes=len(result.changed),
            errors=len(result.failed),
            notified=result.notified,
        )
