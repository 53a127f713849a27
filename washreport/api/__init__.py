"""HTTP routers."""

from . import invoices, reports, templates

__all__ = ["invoices", "reports", "templates"]
