"""Order fulfillment and redemption API."""

__version__ = "0.1.0"
