"""Model pricing and cost resolution engine."""

__version__ = "0.3.0"
