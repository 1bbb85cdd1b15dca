"""Weather-aware travel window advisory engine."""

__version__ = "0.3.0"
