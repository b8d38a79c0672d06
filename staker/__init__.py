"""Batch CPU/NET stake delegation for WAX accounts."""

__version__ = "0.1.0"
