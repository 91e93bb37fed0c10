"""Tests for product-level tracking: best value, comparisons and notifications."""

from datetime import datetime, timezone

import pytest

from webtracker.errors import PluginNotFoundError, ProductNotFoundError
from webtracker.models import ChangeType, NotificationConfig, ThresholdType
from webtracker.renderer import RenderResult

S1 = "https://www.alpha.test/widget"
S2 = "https://beta.test/item/7"
S3 = "https://gamma.test/p"


def _create(manager, urls, **kwargs):
    kwargs.setdefault("notifications", [{"notifier_type": "fake", "config": {"to": "me"}}])
    return manager.create_product(
        "Widget",
        "price",
        sources=[{"url": url, "selector": ".price"} for url in urls],
        **kwargs,
    )


def _logs(store, product):
    return store.find("notification_logs", lambda r: r["product_id"] == product.id)


class TestBestValue:
    """Cross-source reconciliation"""

    def test_lowest_price_wins(self, orchestrator, manager, renderer):
        product = _create(manager, [S1, S2, S3])
        renderer.script(S1, "$120.00")
        renderer.script(S2, "$99.00")
        renderer.script(S3, "$150.00")

        orchestrator.track_product(product.id)

        product = manager.get_product(product.id)
        sources = {s.url: s for s in manager.sources_for(product.id)}
        assert product.best_source_id == sources[S2].id
        assert product.best_value == {"amount": 99.0, "currency": "USD"}

    def test_comparison_recorded(self, orchestrator, manager, renderer, store):
        product = _create(manager, [S1, S2, S3])
        renderer.script(S1, "$120.00")
        renderer.script(S2, "$99.00")
        renderer.script(S3, "$150.00")

        orchestrator.track_product(product.id)

        [comparison] = store.find("comparisons")
        assert comparison["best_scalar"] == 99.0
        assert comparison["worst_scalar"] == 150.0
        assert comparison["average_scalar"] == pytest.approx(123.0)
        assert len(comparison["sources"]) == 3

    def test_single_source_has_no_comparison(self, orchestrator, manager, renderer, store):
        product = _create(manager, [S1])
        renderer.script(S1, "$120.00")
        orchestrator.track_product(product.id)
        assert store.count("comparisons") == 0
        assert manager.get_product(product.id).best_value["amount"] == 120.0

    def test_failed_source_keeps_previous_best(self, orchestrator, manager, renderer):
        """A source that fails this cycle still competes with its stored value."""
        product = _create(manager, [S1, S2])
        renderer.script(S1, "$80.00", RenderResult.failed("timeout"))
        renderer.script(S2, "$90.00")

        orchestrator.track_product(product.id)
        orchestrator.track_product(product.id)

        best_id = manager.get_product(product.id).best_source_id
        assert manager.get_source(best_id).url == S1

    def test_parser_exception_isolated_to_its_source(self, orchestrator, manager, renderer, registry, monkeypatch):
        product = _create(manager, [S1, S2])
        plugin = registry.value_plugin("price")
        original = plugin.parse

        def parse(text):
            if text == "garbled":
                raise ValueError("garbled markup")
            return original(text)

        monkeypatch.setattr(plugin, "parse", parse)
        renderer.script(S1, "garbled")
        renderer.script(S2, "$90.00")

        result = orchestrator.track_product(product.id)

        by_url = {s.id: s.url for s in manager.sources_for(product.id)}
        outcomes = {by_url[r.source_id]: r.success for r in result.results}
        assert outcomes == {S1: False, S2: True}
        best_id = manager.get_product(product.id).best_source_id
        assert manager.get_source(best_id).url == S2

    def test_schedules_next_check(self, orchestrator, manager, renderer, clock):
        product = _create(manager, [S1], check_interval="0 0 * * *")
        renderer.script(S1, "$120.00")
        orchestrator.track_product(product.id)

        product = manager.get_product(product.id)
        assert product.last_checked == clock()
        assert product.next_check == datetime(2024, 5, 2, 0, 0, tzinfo=timezone.utc)


class TestEndToEnd:
    def test_price_drop_across_two_sources(self, orchestrator, manager, renderer, notifier, store):
        """S1 $100 and S2 $90, then S1 drops to $80: S1 becomes best and one notification goes out."""
        product = _create(manager, [S1, S2])
        renderer.script(S1, "$100.00", "$80.00")
        renderer.script(S2, "$90.00")

        first = orchestrator.track_product(product.id)
        assert first.changed == []
        assert first.event is None
        assert notifier.events == []
        sources = {s.url: s for s in manager.sources_for(product.id)}
        assert sources[S1].original_value["amount"] == 100.0
        assert sources[S2].original_value["amount"] == 90.0
        assert manager.get_product(product.id).best_source_id == sources[S2].id

        second = orchestrator.track_product(product.id)
        sources = {s.url: s for s in manager.sources_for(product.id)}
        assert sources[S1].original_value["amount"] == 100.0
        assert manager.get_product(product.id).best_source_id == sources[S1].id
        assert store.count("comparisons") == 2

        [event] = notifier.events
        assert second.event is event
        assert event.change_type == ChangeType.DECREASED
        assert event.formatted_old == "$100.00"
        assert event.formatted_new == "$80.00"
        assert event.difference == "$20.00"
        assert event.source_id is None

        comparison = event.comparison
        assert comparison.best.source_id == sources[S1].id
        assert comparison.best.formatted_value == "$80.00"
        assert comparison.savings.amount == pytest.approx(10.0)
        assert comparison.savings.percentage == pytest.approx(11.11, abs=0.01)
        assert {s.store_name: s.changed for s in comparison.all_sources} == {"alpha.test": True, "beta.test": False}

        [log] = _logs(store, product)
        assert log["status"] == "sent"
        assert log["type"] == "fake"

    def test_single_source_event_names_source(self, orchestrator, manager, renderer, notifier):
        product = _create(manager, [S1])
        renderer.script(S1, "$100.00", "$110.00")
        orchestrator.track_product(product.id)
        orchestrator.track_product(product.id)

        [event] = notifier.events
        assert event.comparison is None
        assert event.source_url == S1
        assert event.source_store == "alpha.test"
        assert event.screenshot == "c2hvdA=="
        payload = event.to_dict()
        assert payload["changeType"] == "increased"
        assert payload["source"]["storeName"] == "alpha.test"
        assert payload["actionUrls"]["dismiss"] == f"http://tracker.test/actions/dismiss/{product.id}"


class TestNotifyRules:
    """notify_on and threshold handling"""

    def test_decrease_threshold(self, orchestrator, manager, renderer, notifier):
        """A $5 drop stays below a $10 threshold; a further $15 drop notifies."""
        product = _create(
            manager,
            [S1],
            notify_on="decrease",
            threshold={"type": "absolute", "value": 10},
        )
        renderer.script(S1, "$100.00", "$95.00", "$80.00")

        orchestrator.track_product(product.id)
        result = orchestrator.track_product(product.id)
        assert len(result.changed) == 1
        assert result.event is None
        assert notifier.events == []

        orchestrator.track_product(product.id)
        [event] = notifier.events
        assert event.formatted_new == "$80.00"
        assert event.threshold.type == ThresholdType.ABSOLUTE

    def test_relative_threshold(self, orchestrator, manager, renderer, notifier):
        product = _create(manager, [S1], notify_on="decrease", threshold={"type": "relative", "value": 10})
        renderer.script(S1, "$100.00", "$95.00", "$80.00")
        for _ in range(3):
            orchestrator.track_product(product.id)
        assert [e.formatted_new for e in notifier.events] == ["$80.00"]

    def test_increase_rule_ignores_drops(self, orchestrator, manager, renderer, notifier):
        product = _create(manager, [S1], notify_on="increase")
        renderer.script(S1, "$100.00", "$90.00", "$95.00")
        for _ in range(3):
            orchestrator.track_product(product.id)
        assert [e.change_type for e in notifier.events] == [ChangeType.INCREASED]

    def test_no_change_no_notification(self, orchestrator, manager, renderer, notifier, store):
        product = _create(manager, [S1])
        renderer.script(S1, "$100.00")
        orchestrator.track_product(product.id)
        orchestrator.track_product(product.id)
        assert notifier.events == []
        assert _logs(store, product) == []


class TestDispatch:
    """Delivery through configured notifiers"""

    def test_failing_notifier_does_not_block_others(self, orchestrator, manager, renderer, notifier, store):
        product = _create(
            manager,
            [S1],
            notifications=[
                {"notifier_type": "failing", "config": {}},
                {"notifier_type": "fake", "config": {}},
            ],
        )
        renderer.script(S1, "$100.00", "$90.00")
        orchestrator.track_product(product.id)
        result = orchestrator.track_product(product.id)

        assert [(d.notifier_type, d.success) for d in result.dispatches] == [("failing", False), ("fake", True)]
        assert result.notified
        assert len(notifier.events) == 1
        statuses = {log["type"]: log["status"] for log in _logs(store, product)}
        assert statuses == {"failing": "failed", "fake": "sent"}

    def test_initialize_failure_is_logged(self, orchestrator, manager, renderer, notifier, store):
        product = _create(manager, [S1], notifications=[{"notifier_type": "fake", "config": {"broken": True}}])
        renderer.script(S1, "$100.00", "$90.00")
        orchestrator.track_product(product.id)
        result = orchestrator.track_product(product.id)

        assert not result.notified
        assert notifier.events == []
        [log] = _logs(store, product)
        assert log["status"] == "failed"
        assert log["error"] == "bad config"

    def test_notifier_exception_is_a_failure(self, orchestrator, manager, renderer, notifier, store, monkeypatch):
        def explode(event):
            raise RuntimeError("socket closed")

        monkeypatch.setattr(notifier, "notify", explode)
        product = _create(manager, [S1])
        renderer.script(S1, "$100.00", "$90.00")
        orchestrator.track_product(product.id)
        result = orchestrator.track_product(product.id)

        assert result.dispatches[0].error == "socket closed"
        assert _logs(store, product)[0]["status"] == "failed"

    def test_initialize_exception_does_not_block_others(
        self, orchestrator, manager, renderer, notifier, failing_notifier, store, monkeypatch
    ):
        def explode(config):
            raise TypeError("bad recipients")

        monkeypatch.setattr(failing_notifier, "initialize", explode)
        product = _create(
            manager,
            [S1],
            notifications=[
                {"notifier_type": "failing", "config": {}},
                {"notifier_type": "fake", "config": {}},
            ],
        )
        renderer.script(S1, "$100.00", "$90.00")
        orchestrator.track_product(product.id)
        result = orchestrator.track_product(product.id)

        assert [(d.notifier_type, d.success) for d in result.dispatches] == [("failing", False), ("fake", True)]
        assert result.dispatches[0].error == "bad recipients"
        assert len(notifier.events) == 1
        statuses = {log["type"]: log["status"] for log in _logs(store, product)}
        assert statuses == {"failing": "failed", "fake": "sent"}

    def test_disabled_config_is_ignored(self, orchestrator, manager, renderer, notifier):
        product = _create(manager, [S1], notifications=[{"notifier_type": "fake", "config": {}, "is_enabled": False}])
        renderer.script(S1, "$100.00", "$90.00")
        orchestrator.track_product(product.id)
        result = orchestrator.track_product(product.id)
        assert result.dispatches == []
        assert notifier.events == []

    def test_rate_limit(self, orchestrator, manager, renderer, notifier, store, clock):
        product = _create(manager, [S1], notifications=[{"notifier_type": "fake", "config": {}, "rate_limit_hours": 24}])
        renderer.script(S1, "$100.00", "$90.00", "$80.00", "$70.00")
        orchestrator.track_product(product.id)
        orchestrator.track_product(product.id)
        assert len(notifier.events) == 1
        assert manager.notifications_for(product.id)[0].last_sent == clock()

        clock.advance(hours=1)
        result = orchestrator.track_product(product.id)
        assert result.dispatches[0].rate_limited
        assert len(notifier.events) == 1
        assert len(_logs(store, product)) == 1

        clock.advance(hours=24)
        orchestrator.track_product(product.id)
        assert len(notifier.events) == 2


class TestProductStates:
    def test_missing_product(self, orchestrator):
        with pytest.raises(ProductNotFoundError):
            orchestrator.track_product("missing")

    def test_paused_product_skipped(self, orchestrator, manager, renderer):
        product = _create(manager, [S1])
        manager.update_product(product.id, is_paused=True)
        result = orchestrator.track_product(product.id)
        assert result.skipped
        assert renderer.calls == []

    def test_missing_notifier_plugin_fails_product(self, orchestrator, manager, renderer, store):
        """An unknown notifier type fails the product before any source is fetched."""
        product = _create(manager, [S1])
        store.insert("notification_configs", NotificationConfig(product_id=product.id, notifier_type="sms").to_record())
        with pytest.raises(PluginNotFoundError):
            orchestrator.track_product(product.id)
        assert renderer.calls == []

    def test_inactive_sources_not_fetched(self, orchestrator, manager, renderer):
        product = _create(manager, [S1, S2])
        source = next(s for s in manager.sources_for(product.id) if s.url == S2)
        manager.update_source(source.id, is_active=False)
        renderer.script(S1, "$10.00")
        result = orchestrator.track_product(product.id)
        assert [call[0] for call in renderer.calls] == [S1]
        assert len(result.results) == 1
