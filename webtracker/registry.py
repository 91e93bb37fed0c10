"""Maps value kinds and notifier kinds to plugin instances."""

import logging

from webtracker.config import Settings
from webtracker.errors import PluginNotFoundError
from webtracker.models import ValueKind
from webtracker.notifiers import DiscordNotifier, EmailNotifier, Notifier
from webtracker.trackers import NumberTracker, PriceTracker, ValuePlugin, VersionTracker

logger = logging.getLogger(__name__)

BUILTIN_VALUE_KINDS = tuple(k.value for k in ValueKind)
BUILTIN_NOTIFIER_KINDS = ("email", "discord")


class PluginRegistry:
    """
    Two closed families keyed by kind: value plugins and notifiers.

    Built once at startup and handed to the components that need it.
    Registering the same kind again replaces the earlier plugin.
    """

    def __init__(self):
        self._values: dict[str, ValuePlugin] = {}
        self._notifiers: dict[str, Notifier] = {}

    def register_value(self, plugin: ValuePlugin) -> None:
        kind = _key(plugin.kind)
        if kind in self._values:
            logger.warning("Replacing value plugin for kind '%s'", kind)
        self._values[kind] = plugin
        logger.debug("Registered value plugin: %s", plugin.name)

    def register_notifier(self, notifier: Notifier) -> None:
        kind = _key(notifier.kind)
        if kind in self._notifiers:
            logger.warning("Replacing notifier for kind '%s'", kind)
        self._notifiers[kind] = notifier
        logger.debug("Registered notifier: %s", notifier.name)

    def value_plugin(self, kind) -> ValuePlugin:
        try:
            return self._values[_key(kind)]
        except KeyError:
            raise PluginNotFoundError("value", _key(kind)) from None

    def notifier(self, kind) -> Notifier:
        try:
            return self._notifiers[_key(kind)]
        except KeyError:
            raise PluginNotFoundError("notifier", _key(kind)) from None

    def has_value_plugin(self, kind) -> bool:
        return _key(kind) in self._values

    def has_notifier(self, kind) -> bool:
        return _key(kind) in self._notifiers

    def value_kinds(self) -> list[str]:
        return sorted(self._values)

    def notifier_kinds(self) -> list[str]:
        return sorted(self._notifiers)

    def verify(self) -> None:
        """Fail fast when a built-in kind is missing."""
        for kind in BUILTIN_VALUE_KINDS:
            self.value_plugin(kind)
        for kind in BUILTIN_NOTIFIER_KINDS:
            self.notifier(kind)


def build_default_registry(settings: Settings | None = None) -> PluginRegistry:
    """Registry with the price, version and number trackers and the email and discord notifiers."""
    settings = settings or Settings()
    registry = PluginRegistry()
    registry.register_value(PriceTracker())
    registry.register_value(VersionTracker())
    registry.register_value(NumberTracker())
    registry.register_notifier(EmailNotifier(settings))
    registry.register_notifier(DiscordNotifier(settings))
    logger.info(
        "Plugins loaded: %s trackers, %s notifiers",
        len(registry.value_kinds()),
        len(registry.notifier_kinds()),
    )
    return registry


def _key(kind) -> str:
    return kind.value if isinstance(kind, ValueKind) else str(kind)
