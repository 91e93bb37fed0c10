"""Fetch, parse, persist and compare one source."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from webtracker.config import Settings
from webtracker.errors import StorageError
from webtracker.models import Observation, Source, utcnow
from webtracker.renderer import Renderer, RenderResult
from webtracker.storage import Store
from webtracker.trackers.base import CompareResult, ValuePlugin

logger = logging.getLogger(__name__)


@dataclass
class TrackingResult:
    """
    Outcome of tracking one source in one cycle.

    ``old_value``/``new_value`` are plugin values, not stored dicts.
    ``skipped`` marks a source that was not tracked and not counted as
    a failure (inactive, or a low-confidence parse that is tolerated).
    """

    source_id: str
    success: bool
    changed: bool = False
    old_value: Any = None
    new_value: Any = None
    comparison: CompareResult | None = None
    text: str | None = None
    screenshot: str | None = None
    error: str | None = None
    skipped: bool = False


class SourceTracker:
    """
    Drives one source through fetch -> parse -> persist -> compare.

    Fetch and parse failures are counted on the source; when the count
    reaches ``settings.retry_attempts`` the source is deactivated. Nothing
    raised by the renderer or the store escapes ``track``.
    """

    def __init__(
        self,
        store: Store,
        renderer: Renderer,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.renderer = renderer
        self.settings = settings
        self.clock = clock

    def track(self, source: Source, plugin: ValuePlugin) -> TrackingResult:
        if not source.is_active:
            logger.debug("Skipping inactive source: %s", source.url)
            return TrackingResult(source_id=source.id, success=False, skipped=True)

        try:
            render = self.renderer.fetch(source.url, source.selector, source.selector_type)
        except Exception as e:
            logger.exception("Renderer raised for %s", source.url)
            render = RenderResult.failed(str(e))

        if not render.success:
            return self._fail(source, f"Failed to fetch {source.url}: {render.error or 'unknown error'}")

        try:
            return self._record(source, plugin, render)
        except StorageError as e:
            logger.error("Store failed while tracking %s: %s", source.url, e)
            return self._fail(source, f"Storage error: {e}")

    def _record(self, source: Source, plugin: ValuePlugin, render: RenderResult) -> TrackingResult:
        text = render.text or ""
        now = self.clock()

        if not source.title and render.title:
            self.store.update("sources", source.id, title=render.title)

        try:
            parsed = plugin.parse(text)
        except Exception as e:
            logger.exception("Parser raised for %s", source.url)
            return self._fail(source, f"Parser raised for {source.url}: {e}")
        if not parsed.success:
            return self._fail(source, f"Failed to parse content from {source.url}: {text[:80]!r}")

        min_confidence = self.settings.min_parse_confidence
        if parsed.confidence < min_confidence:
            message = f"Low confidence parse ({parsed.confidence} < {min_confidence}) for {source.url}"
            if self.settings.low_confidence_is_error:
                return self._fail(source, message)
            logger.warning("%s; keeping previous value", message)
            return TrackingResult(source_id=source.id, success=False, skipped=True, text=text, error=message)

        old_value = plugin.load(source.current_value)
        new_value = parsed.value
        stored = plugin.dump(new_value)

        changes = {
            "current_value": stored,
            "current_text": text,
            "last_checked": now,
            "error_count": 0,
            "last_error": None,
        }
        # original value is written once
        if source.original_value is None:
            changes["original_value"] = stored
        if source.original_text is None:
            changes["original_text"] = text
        self.store.update("sources", source.id, **changes)
        self.store.insert(
            "history",
            Observation(source_id=source.id, value=stored, text=text, timestamp=now).to_record(),
        )

        comparison = plugin.compare(old_value, new_value) if old_value is not None else None
        changed = bool(comparison and comparison.changed)
        logger.info(
            "%s: %s%s",
            source.store_name or source.url,
            plugin.format(new_value),
            f" (was {plugin.format(old_value)})" if changed else "",
        )
        return TrackingResult(
            source_id=source.id,
            success=True,
            changed=changed,
            old_value=old_value,
            new_value=new_value,
            comparison=comparison,
            text=text,
            screenshot=render.screenshot,
        )

    def _fail(self, source: Source, message: str) -> TrackingResult:
        error_count = source.error_count + 1
        changes = {
            "error_count": error_count,
            "last_error": message,
            "last_checked": self.clock(),
        }
        if error_count >= self.settings.retry_attempts:
            changes["is_active"] = False
            logger.warning("Disabled source after %d consecutive errors: %s", error_count, source.url)
        else:
            logger.warning("%s (error %d of %d)", message, error_count, self.settings.retry_attempts)

        try:
            self.store.update("sources", source.id, **changes)
        except StorageError as e:
            logger.error("Could not record failure for %s: %s", source.url, e)
        return TrackingResult(source_id=source.id, success=False, error=message)
