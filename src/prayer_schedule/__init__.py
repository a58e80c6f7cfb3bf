"""Prayer schedule resolution with offline cache and bundled fallback."""

__version__ = "0.1.0"
