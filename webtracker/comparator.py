"""Best-value reconciliation and notification decisions."""

from dataclasses import dataclass
from typing import Any

from webtracker.models import (
    ActionUrls,
    ChangeType,
    Comparison,
    ComparisonPayload,
    NotificationEvent,
    NotifyRule,
    Product,
    Savings,
    Source,
    SourceSnapshot,
    Threshold,
    ThresholdType,
)
from webtracker.source_tracker import TrackingResult
from webtracker.trackers.base import CompareResult, ValuePlugin


@dataclass
class SourceValue:
    """An active source paired with its loaded current value."""

    source: Source
    value: Any


def current_values(plugin: ValuePlugin, sources: list[Source]) -> list[SourceValue]:
    """Active sources whose stored current value loads, in source order."""
    entries = []
    for source in sources:
        if not source.is_active or source.current_value is None:
            continue
        value = plugin.load(source.current_value)
        if value is not None:
            entries.append(SourceValue(source, value))
    return entries


def select_best(plugin: ValuePlugin, entries: list[SourceValue]) -> SourceValue | None:
    """Pairwise reduce; a later entry only wins when strictly better."""
    best = None
    for entry in entries:
        if best is None or plugin.is_better(entry.value, best.value):
            best = entry
    return best


def build_comparison(plugin: ValuePlugin, product_id: str, entries: list[SourceValue]) -> Comparison | None:
    """Snapshot of all current values; needs at least two sources."""
    if len(entries) < 2:
        return None
    best = select_best(plugin, entries)
    scalars = [s for s in (plugin.scalar(e.value) for e in entries) if s is not None]
    worst_scalar = average = None
    if scalars:
        worst_scalar = max(scalars) if plugin.prefers_lower else min(scalars)
        average = sum(scalars) / len(scalars)
    return Comparison(
        product_id=product_id,
        sources=[
            {
                "source_id": e.source.id,
                "store_name": e.source.store_name,
                "value": plugin.dump(e.value),
            }
            for e in entries
        ],
        best_source_id=best.source.id,
        best_value=plugin.dump(best.value),
        best_scalar=plugin.scalar(best.value),
        worst_scalar=worst_scalar,
        average_scalar=average,
    )


def meets_threshold(threshold: Threshold | None, result: CompareResult) -> bool:
    if threshold is None or not threshold.value:
        return True
    if threshold.type == ThresholdType.RELATIVE:
        return result.percent_change is not None and result.percent_change >= threshold.value
    return result.difference >= threshold.value


def should_notify(product: Product, changed: list[TrackingResult]) -> bool:
    """True when any changed source satisfies the product's notification rule."""
    if not changed:
        return False
    if product.notify_on == NotifyRule.ANY_CHANGE:
        return True

    wanted = ChangeType.DECREASED if product.notify_on == NotifyRule.DECREASE else ChangeType.INCREASED
    for result in changed:
        if result.comparison is None:
            continue
        if result.comparison.change_type == wanted and meets_threshold(product.threshold, result.comparison):
            return True
    return False


def build_event(
    product: Product,
    plugin: ValuePlugin,
    changed: list[TrackingResult],
    sources: list[Source],
    base_url: str,
) -> NotificationEvent:
    """
    Notification payload for ``changed`` (non-empty).

    With more than one active source the event carries a comparison of
    every current value; otherwise it names the single changed source.
    The first changed source supplies the headline change.
    """
    primary = changed[0]
    comparison = primary.comparison or plugin.compare(primary.old_value, primary.new_value)
    by_id = {s.id: s for s in sources}
    active = [s for s in sources if s.is_active]

    event = NotificationEvent(
        product_id=product.id,
        product_name=product.name,
        change_type=comparison.change_type,
        old_value=plugin.dump(primary.old_value) if primary.old_value is not None else None,
        new_value=plugin.dump(primary.new_value) if primary.new_value is not None else None,
        formatted_old=plugin.format(primary.old_value),
        formatted_new=plugin.format(primary.new_value),
        difference=plugin.format_difference(comparison.difference, primary.new_value),
        action_urls=ActionUrls.for_product(base_url, product.id),
        threshold=product.threshold,
        screenshot=primary.screenshot,
    )

    if len(active) > 1:
        event.comparison = _comparison_payload(plugin, active, {r.source_id for r in changed})
    else:
        source = by_id.get(primary.source_id)
        if source is not None:
            event.source_id = source.id
            event.source_url = source.url
            event.source_store = source.store_name
    return event


def _comparison_payload(plugin: ValuePlugin, active: list[Source], changed_ids: set[str]) -> ComparisonPayload | None:
    entries = current_values(plugin, active)
    if not entries:
        return None

    snapshots = {
        e.source.id: SourceSnapshot(
            source_id=e.source.id,
            store_name=e.source.store_name or "",
            value=plugin.dump(e.value),
            formatted_value=plugin.format(e.value),
            url=e.source.url,
            changed=e.source.id in changed_ids,
        )
        for e in entries
    }
    best = select_best(plugin, entries)

    savings = None
    if plugin.prefers_lower:
        scalars = [s for s in (plugin.scalar(e.value) for e in entries) if s is not None]
        best_scalar = plugin.scalar(best.value)
        if scalars and best_scalar is not None:
            worst = max(scalars)
            if worst > best_scalar:
                savings = Savings(amount=worst - best_scalar, percentage=(worst - best_scalar) / worst * 100)

    return ComparisonPayload(
        best=snapshots[best.source.id],
        all_sources=list(snapshots.values()),
        savings=savings,
    )
