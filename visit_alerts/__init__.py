"""Visitor engagement alerting: detection, dedup, delivery and daily digests."""

__version__ = "0.1.0"
