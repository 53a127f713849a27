"""Report engine services."""

from .aggregation import ReportShaper, RowSection, ShapedReport, classify
from .datasource import DataSource, FetchError, InMemoryDataSource, QueryFilter
from .export_formatter import EmptyReportError, ExportFormatter
from .invoice_engine import InvoiceGroupingEngine, billing_friday, build_item_name
from .preview import PreviewSession
from .query_executor import WorkLogQueryExecutor
from .report_engine import ReportEngine, ReportResult, ReportStatus
from .templates import SYSTEM_TEMPLATES, TemplateStore

__all__ = [
    "ReportShaper",
    "RowSection",
    "ShapedReport",
    "classify",
    "DataSource",
    "FetchError",
    "InMemoryDataSource",
    "QueryFilter",
    "EmptyReportError",
    "ExportFormatter",
    "InvoiceGroupingEngine",
    "billing_friday",
    "build_item_name",
    "PreviewSession",
    "WorkLogQueryExecutor",
    "ReportEngine",
    "ReportResult",
    "ReportStatus",
    "SYSTEM_TEMPLATES",
    "TemplateStore",
]
