"""AmoCRM OAuth token lifecycle and lead lookups."""

__version__ = "0.1.0"
