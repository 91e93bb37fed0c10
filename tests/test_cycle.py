"""Tests for running a tracking cycle over due products."""

import pytest

from webtracker.cycle import CycleRunner
from webtracker.rate_limiter import RateLimiter
from webtracker.renderer import RenderResult


class RecordingLimiter(RateLimiter):
    def __init__(self):
        super().__init__(0)
        self.acquired = 0
        self.resets = 0

    def acquire(self) -> float:
        self.acquired += 1
        return 0.0

    def reset(self) -> None:
        self.resets += 1


@pytest.fixture
def limiter():
    return RecordingLimiter()


@pytest.fixture
def runner(store, orchestrator, limiter, clock):
    return CycleRunner(store, orchestrator, limiter, clock)


def _product(manager, name, url):
    return manager.create_product(name, "price", sources=[{"url": url, "selector": ".price"}])


class TestDueProducts:
    def test_new_products_are_due(self, runner, manager):
        _product(manager, "A", "https://a.test")
        assert [p.name for p in runner.due_products()] == ["A"]

    def test_future_next_check_not_due(self, runner, manager, clock):
        product = _product(manager, "A", "https://a.test")
        manager.store.update("products", product.id, next_check=clock().replace(hour=13))
        assert runner.due_products() == []

        clock.advance(hours=1)
        assert len(runner.due_products()) == 1

    def test_inactive_products_not_due(self, runner, manager):
        product = _product(manager, "A", "https://a.test")
        manager.update_product(product.id, is_active=False)
        assert runner.due_products() == []


class TestRun:
    """Cycle summary and isolation"""

    def test_summary_counts(self, runner, manager, renderer, limiter):
        _product(manager, "Good", "https://good.test")
        _product(manager, "Broken", "https://broken.test")
        renderer.script("https://good.test", "$10.00")
        renderer.script("https://broken.test", RenderResult.failed("timeout"))

        summary = runner.run()

        assert summary.processed == 2
        assert summary.succeeded == 1
        assert summary.errored == 0
        outcomes = {o.name: o for o in summary.outcomes}
        assert outcomes["Good"].success
        assert not outcomes["Broken"].success
        assert outcomes["Broken"].errors == 1
        assert limiter.resets == 1
        assert limiter.acquired == 2

    def test_tracked_products_wait_for_next_check(self, runner, manager, renderer):
        _product(manager, "A", "https://a.test")
        renderer.script("https://a.test", "$10.00")
        assert runner.run().processed == 1
        assert runner.run().processed == 0

    def test_exception_becomes_error_outcome(self, runner, manager, renderer, orchestrator, monkeypatch):
        """One product raising does not stop the others."""
        bad = _product(manager, "Bad", "https://bad.test")
        _product(manager, "Fine", "https://fine.test")
        renderer.script("https://fine.test", "$5.00")
        original = orchestrator.track_product

        def track(product_id):
            if product_id == bad.id:
                raise RuntimeError("kaboom")
            return original(product_id)

        monkeypatch.setattr(orchestrator, "track_product", track)
        summary = runner.run()

        outcomes = {o.name: o for o in summary.outcomes}
        assert outcomes["Bad"].error == "kaboom"
        assert not outcomes["Bad"].success
        assert outcomes["Fine"].success
        assert summary.errored == 1

    def test_changes_counted(self, runner, manager, renderer, clock):
        _product(manager, "A", "https://a.test")
        renderer.script("https://a.test", "$10.00", "$8.00")
        runner.run()
        clock.advance(days=1)
        summary = runner.run()
        assert summary.changed == 1
        assert summary.outcomes[0].changes == 1

    def test_product_without_sources_succeeds(self, runner, manager):
        manager.create_product("Empty", "number")
        [outcome] = runner.run().outcomes
        assert outcome.success
        assert outcome.changes == 0

    def test_to_dict(self, runner, manager, renderer):
        _product(manager, "A", "https://a.test")
        renderer.script("https://a.test", "$10.00")
        data = runner.run().to_dict()
        assert data["processed"] == 1
        assert data["results"][0]["name"] == "A"
        assert data["finishedAt"] is not None

    def test_unloadable_record_becomes_error_outcome(self, runner, manager, renderer, store):
        """A corrupt product record is reported; the rest of the cycle still runs."""
        store.insert("products", {"id": "bad", "name": "Corrupt", "kind": "weather", "is_active": True})
        _product(manager, "Fine", "https://fine.test")
        renderer.script("https://fine.test", "$5.00")

        summary = runner.run()

        assert summary.processed == 2
        assert summary.errored == 1
        outcomes = {o.name: o for o in summary.outcomes}
        assert outcomes["Corrupt"].product_id == "bad"
        assert not outcomes["Corrupt"].success
        assert "weather" in outcomes["Corrupt"].error
        assert outcomes["Fine"].success
        assert [p.name for p in runner.due_products()] == []
