"""Wash report builder and QuickBooks invoice export."""

__version__ = "1.0.0"
