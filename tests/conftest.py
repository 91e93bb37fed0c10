"""Shared fixtures: in-memory store, scripted renderer, recording notifier."""

from datetime import datetime, timedelta, timezone

import pytest

from webtracker.config import Settings
from webtracker.models import NotificationEvent, SelectorType
from webtracker.notifiers.base import Notifier, NotifyResult
from webtracker.orchestrator import ProductOrchestrator
from webtracker.products import ProductManager
from webtracker.registry import build_default_registry
from webtracker.renderer import RenderResult
from webtracker.storage import MemoryStore


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeRenderer:
    """
    Returns scripted results per URL.

    A script entry is either extracted text or a RenderResult. Each fetch
    consumes one entry; the last entry repeats.
    """

    def __init__(self):
        self.scripts: dict[str, list] = {}
        self.pages: dict[str, str] = {}
        self.calls: list[tuple] = []

    def script(self, url: str, *entries) -> None:
        self.scripts[url] = list(entries)

    def fetch(self, url, selector=None, selector_type=SelectorType.CSS) -> RenderResult:
        self.calls.append((url, selector, selector_type))
        entries = self.scripts.get(url)
        if not entries:
            return RenderResult.failed(f"no script for {url}")
        entry = entries.pop(0) if len(entries) > 1 else entries[0]
        if isinstance(entry, RenderResult):
            return entry
        return RenderResult(success=True, text=entry, title=f"Page {url}", screenshot="c2hvdA==")

    def fetch_page(self, url) -> RenderResult:
        self.calls.append((url, None, None))
        if url not in self.pages:
            return RenderResult.failed(f"no page for {url}")
        return RenderResult(success=True, title="Page", html=self.pages[url])


class FakeNotifier(Notifier):
    kind = "fake"
    name = "Fake Notifier"
    description = "Records events"

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.configs: list[dict] = []
        self.events: list[NotificationEvent] = []

    def initialize(self, config: dict) -> NotifyResult:
        self.configs.append(config)
        if config.get("broken"):
            return NotifyResult.fail("bad config")
        return NotifyResult.ok()

    def notify(self, event: NotificationEvent) -> NotifyResult:
        self.events.append(event)
        return NotifyResult.ok("msg-1") if self.succeed else NotifyResult.fail("transport down")


class FailingNotifier(FakeNotifier):
    kind = "failing"
    name = "Failing Notifier"

    def __init__(self):
        super().__init__(succeed=False)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return Settings(base_url="http://tracker.test", product_delay_seconds=0, retry_attempts=3)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


@pytest.fixture
def registry(settings, notifier, failing_notifier):
    registry = build_default_registry(settings)
    registry.register_notifier(notifier)
    registry.register_notifier(failing_notifier)
    return registry


@pytest.fixture
def manager(store, registry):
    return ProductManager(store, registry)


@pytest.fixture
def orchestrator(store, registry, renderer, settings, clock):
    return ProductOrchestrator(store, registry, renderer, settings, clock=clock)
