"""Exceptions raised by the tracking engine."""


class TrackerError(Exception):
    """Base class for tracker failures."""


class ConfigurationError(TrackerError):
    """Raised when configuration is missing or invalid."""


class PluginNotFoundError(TrackerError):
    """Raised when a value kind or notifier kind has no registered plugin."""

    def __init__(self, family: str, kind: str):
        super().__init__(f"No {family} plugin registered for kind '{kind}'")
        self.family = family
        self.kind = kind


class ProductNotFoundError(TrackerError):
    """Raised when a product id does not exist."""


class SourceNotFoundError(TrackerError):
    """Raised when a source id does not exist."""


class DuplicateSourceError(TrackerError):
    """Raised when a product already tracks the given URL."""


class StorageError(TrackerError):
    """Raised when the record store cannot complete an operation."""


class CycleInProgressError(TrackerError):
    """Raised when a tracking cycle is requested while one is running."""
