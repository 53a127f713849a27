"""Data models for the report builder."""

from .columns import (
    COLUMN_REGISTRY,
    AggregateKind,
    ColumnDefinition,
    ColumnId,
    ColumnRegistry,
)
from .invoice import (
    DEFAULT_EXPORT_COLUMNS,
    INVOICE_DATE_MODES,
    INVOICE_FIELDS,
    PREVIEW_EXPORT_COLUMNS,
    ExportColumn,
    ExportLayout,
    InvoiceLine,
    RateType,
)
from .report_config import (
    FilterOperator,
    ReportConfig,
    ReportFilter,
    ReportShape,
    ReportTemplate,
    ReportType,
    SortDirection,
    SortSpec,
)

__all__ = [
    "COLUMN_REGISTRY",
    "AggregateKind",
    "ColumnDefinition",
    "ColumnId",
    "ColumnRegistry",
    "DEFAULT_EXPORT_COLUMNS",
    "INVOICE_DATE_MODES",
    "INVOICE_FIELDS",
    "PREVIEW_EXPORT_COLUMNS",
    "ExportColumn",
    "ExportLayout",
    "InvoiceLine",
    "RateType",
    "FilterOperator",
    "ReportConfig",
    "ReportFilter",
    "ReportShape",
    "ReportTemplate",
    "ReportType",
    "SortDirection",
    "SortSpec",
]
