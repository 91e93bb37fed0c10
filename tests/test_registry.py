"""Tests for the plugin registry."""

import pytest

from webtracker.errors import PluginNotFoundError
from webtracker.models import ValueKind
from webtracker.registry import PluginRegistry, build_default_registry
from webtracker.trackers import PriceTracker


class TestRegistry:
    def test_default_kinds(self):
        registry = build_default_registry()
        assert registry.value_kinds() == ["number", "price", "version"]
        assert registry.notifier_kinds() == ["discord", "email"]
        registry.verify()

    def test_lookup_by_enum_or_string(self):
        registry = build_default_registry()
        assert registry.value_plugin(ValueKind.PRICE) is registry.value_plugin("price")
        assert registry.has_value_plugin(ValueKind.VERSION)
        assert registry.has_notifier("email")

    def test_missing_plugin(self):
        registry = build_default_registry()
        with pytest.raises(PluginNotFoundError) as excinfo:
            registry.notifier("sms")
        assert excinfo.value.family == "notifier"
        assert excinfo.value.kind == "sms"

    def test_verify_fails_when_builtin_missing(self):
        registry = PluginRegistry()
        registry.register_value(PriceTracker())
        with pytest.raises(PluginNotFoundError):
            registry.verify()

    def test_register_replaces(self):
        registry = build_default_registry()
        replacement = PriceTracker(default_currency="EUR")
        registry.register_value(replacement)
        assert registry.value_plugin("price") is replacement
