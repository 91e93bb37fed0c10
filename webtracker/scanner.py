"""Interactive helpers for choosing a selector on a page."""

import logging
from dataclasses import dataclass, field

from webtracker.models import ElementMatch, SelectorType
from webtracker.ranker import ElementRanker
from webtracker.registry import PluginRegistry
from webtracker.renderer import Renderer
from webtracker.trackers.base import ParseResult

logger = logging.getLogger(__name__)

MAX_SCAN_RESULTS = 10


@dataclass
class ScanResult:
    success: bool
    url: str
    target: str
    matches: list[ElementMatch] = field(default_factory=list)
    total_matches: int = 0
    error: str | None = None


@dataclass
class SelectorTestResult:
    success: bool
    text: str | None = None
    parse_result: ParseResult | None = None
    screenshot: str | None = None
    error: str | None = None


class PageScanner:
    """Scan a page for a value, or try a selector against it."""

    def __init__(self, renderer: Renderer, registry: PluginRegistry, ranker: ElementRanker | None = None):
        self.renderer = renderer
        self.registry = registry
        self.ranker = ranker or ElementRanker()

    def scan(self, url: str, target: str, kind=None) -> ScanResult:
        """
        Rank elements on ``url`` containing ``target``, best first.

        With a value ``kind`` the candidates are reranked by that plugin.
        Only the top ten are returned; ``total_matches`` counts them all.
        """
        logger.info("Scanning %s for %r", url, target)
        page = self.renderer.fetch_page(url)
        if not page.success:
            return ScanResult(success=False, url=url, target=target, error=page.error or "Failed to render page")

        matches = self.ranker.find_and_rank(page.html or "", target)
        if kind is not None:
            plugin = self.registry.value_plugin(kind)
            matches = plugin.rank_matches(target, matches)

        return ScanResult(
            success=True,
            url=url,
            target=target,
            matches=matches[:MAX_SCAN_RESULTS],
            total_matches=len(matches),
        )

    def test_selector(
        self,
        url: str,
        selector: str,
        kind=None,
        selector_type: SelectorType = SelectorType.CSS,
    ) -> SelectorTestResult:
        """Extract ``selector`` from ``url`` and parse it with the ``kind`` plugin, if given."""
        render = self.renderer.fetch(url, selector, selector_type)
        if not render.success:
            return SelectorTestResult(success=False, error=render.error or "Failed to render page")

        parse_result = None
        if kind is not None and render.text:
            parse_result = self.registry.value_plugin(kind).parse(render.text)
        return SelectorTestResult(
            success=True,
            text=render.text,
            parse_result=parse_result,
            screenshot=render.screenshot,
        )
