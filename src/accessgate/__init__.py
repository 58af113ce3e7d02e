"""Token-gated access to content-addressed data."""

__version__ = "0.1.0"
