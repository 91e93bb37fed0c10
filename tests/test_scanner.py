"""Tests for page scanning and selector testing."""

import pytest

from webtracker.renderer import RenderResult
from webtracker.scanner import PageScanner

URL = "https://shop.test/widget"

PAGE = """
<html><body>
  <nav><a href="/deals">Deals from $49.99</a></nav>
  <div class="product">
    <span class="price" itemprop="price">$49.99</span>
  </div>
</body></html>
"""


@pytest.fixture
def scanner(renderer, registry):
    return PageScanner(renderer, registry)


class TestScan:
    def test_ranks_matches(self, scanner, renderer):
        renderer.pages[URL] = PAGE
        result = scanner.scan(URL, "$49.99")
        assert result.success
        assert result.total_matches == 2
        assert result.matches[0].selector == ".price"

    def test_rerank_with_plugin(self, scanner, renderer):
        """The price plugin rewards price markup and an exact amount."""
        renderer.pages[URL] = PAGE
        plain = scanner.scan(URL, "$49.99").matches[0]
        ranked = scanner.scan(URL, "$49.99", kind="price").matches[0]
        assert ranked.selector == ".price"
        assert ranked.confidence >= plain.confidence

    def test_results_capped_at_ten(self, scanner, renderer):
        renderer.pages[URL] = "<ul>" + "<li>$1.00</li>" * 12 + "</ul>"
        result = scanner.scan(URL, "$1.00")
        assert result.total_matches == 12
        assert len(result.matches) == 10

    def test_render_failure(self, scanner):
        result = scanner.scan("https://missing.test", "$1")
        assert not result.success
        assert "no page" in result.error


class TestSelectorTest:
    def test_parses_with_kind(self, scanner, renderer):
        renderer.script(URL, "$49.99")
        result = scanner.test_selector(URL, ".price", kind="price")
        assert result.success
        assert result.text == "$49.99"
        assert result.parse_result.value.amount == 49.99
        assert result.screenshot == "c2hvdA=="

    def test_without_kind(self, scanner, renderer):
        renderer.script(URL, "v2.0.1")
        result = scanner.test_selector(URL, ".version")
        assert result.success
        assert result.parse_result is None

    def test_selector_not_found(self, scanner, renderer):
        renderer.script(URL, RenderResult.failed("Selector not found: .gone"))
        result = scanner.test_selector(URL, ".gone", kind="price")
        assert not result.success
        assert "Selector not found" in result.error
