"""Proxy and normalization layer for remote WebSDR waterfall feeds."""

__version__ = "0.1.0"
