"""Web value tracker: price, version and count monitoring across sources."""

__version__ = "0.1.0"
