"""Report pipeline: configuration -> rows -> shape -> file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .. import config as settings
from ..models import (
    COLUMN_REGISTRY,
    DEFAULT_EXPORT_COLUMNS,
    PREVIEW_EXPORT_COLUMNS,
    ColumnDefinition,
    ColumnRegistry,
    ExportColumn,
    ReportConfig,
    ReportShape,
)
from .aggregation import ReportShaper, ShapedReport, classify
from .datasource import DataSource, FetchError
from .export_formatter import (
    EmptyReportError,
    ExportFormatter,
    invoice_filename,
    report_filename,
)
from .invoice_engine import InvoiceExport, InvoiceGroupingEngine
from .query_executor import WorkLogQueryExecutor

logger = logging.getLogger(__name__)


class ReportStatus(Enum):
    OK = "ok"
    NO_COLUMNS = "no_columns"
    NO_ROWS = "no_rows"
    ERROR = "error"


STATUS_MESSAGES = {
    ReportStatus.OK: "",
    ReportStatus.NO_COLUMNS: "Select at least one column to build a report",
    ReportStatus.NO_ROWS: "No data matches the selected filters",
    ReportStatus.ERROR: "Report data could not be loaded",
}


@dataclass
class ReportResult:
    status: ReportStatus
    shape: ReportShape
    columns: List[ColumnDefinition] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    total_count: int = 0
    dropped_columns: List[str] = field(default_factory=list)
    message: str = ""

    def __post_init__(self):
        if not self.message:
            self.message = STATUS_MESSAGES[self.status]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "reportType": self.shape.value,
            "columns": [c.to_dict() for c in self.columns],
            "rows": [_jsonable(r) for r in self.rows],
            "totalCount": self.total_count,
            "droppedColumns": list(self.dropped_columns),
        }


def _jsonable(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.isoformat() if isinstance(v, date) else v) for k, v in row.items()}


class ReportEngine:
    """Runs report configurations against a data source."""

    def __init__(
        self,
        source: DataSource,
        registry: ColumnRegistry = COLUMN_REGISTRY,
        today: Callable[[], date] = date.today,
    ):
        self.source = source
        self.registry = registry
        self.today = today
        self.executor = WorkLogQueryExecutor(source, today=today)
        self.shaper = ReportShaper(registry)

    def sanitize(self, config: ReportConfig) -> Tuple[ReportConfig, List[str]]:
        """Drop column ids the registry no longer knows (stale templates)."""
        dropped = [c for c in config.columns if c not in self.registry]
        if dropped:
            logger.debug("Dropping unknown report columns: %s", ", ".join(dropped))
            config = config.with_columns([c for c in config.columns if c in self.registry])
        return config, dropped

    def run(self, config: ReportConfig, limit: Optional[int] = None) -> ReportResult:
        """Execute a configuration; ``FetchError`` propagates to the caller."""
        config, dropped = self.sanitize(config)
        columns = self.registry.known(config.columns)
        shape = classify(columns)
        if not columns:
            return ReportResult(ReportStatus.NO_COLUMNS, shape, dropped_columns=dropped)

        # Only detail reports can cap at the backend; aggregates need every row
        fetch_limit = limit if shape == ReportShape.DETAIL else None
        fetched = self.executor.fetch(config, limit=fetch_limit)
        if fetched.total_count == 0:
            return ReportResult(ReportStatus.NO_ROWS, shape, columns=columns, dropped_columns=dropped)

        shaped = self.shaper.shape(fetched.frame, config.columns)
        rows = shaped.rows
        total = fetched.total_count if shape == ReportShape.DETAIL else len(rows)
        if limit is not None:
            rows = rows[:limit]
        return ReportResult(
            ReportStatus.OK,
            shape,
            columns=shaped.columns,
            rows=rows,
            total_count=total,
            dropped_columns=dropped,
        )

    def preview(self, config: ReportConfig, limit: int = settings.PREVIEW_ROW_LIMIT) -> ReportResult:
        """Capped run for interactive display; fetch failures become an error state."""
        try:
            return self.run(config, limit=limit)
        except FetchError as exc:
            logger.error("Preview fetch failed", exc_info=True)
            config, dropped = self.sanitize(config)
            columns = self.registry.known(config.columns)
            return ReportResult(
                ReportStatus.ERROR,
                classify(columns),
                columns=columns,
                dropped_columns=dropped,
                message=f"{STATUS_MESSAGES[ReportStatus.ERROR]}: {exc}",
            )

    def export(
        self,
        config: ReportConfig,
        fmt: str = "xlsx",
        template_name: Optional[str] = None,
        sum_columns: Optional[Iterable[str]] = None,
        add_totals: bool = True,
        export_date: Optional[date] = None,
    ) -> Tuple[bytes, str, ReportResult]:
        """Full run rendered to a file; empty results are refused."""
        result = self.run(config)
        if result.status != ReportStatus.OK:
            raise EmptyReportError(result.message)

        if not add_totals:
            sums: List[str] = []
        elif sum_columns is None:
            sums = self.registry.default_sum_columns(c.id for c in result.columns)
        else:
            sums = [c for c in sum_columns if c in self.registry]

        shaped = ShapedReport(result.shape, result.columns, result.rows)
        data = ExportFormatter().report(shaped, fmt=fmt, sum_columns=sums)
        filename = report_filename(template_name, export_date or self.today(), extension=fmt)
        logger.info("Exported %s report %s (%d rows)", result.shape.value, filename, len(result.rows))
        return data, filename, result

    # ===================== Invoices =====================

    def invoice_lines(self, start_date: date, end_date: date, client_ids=None, location_ids=None):
        if start_date > end_date:
            raise ValueError("start date must not be after end date")
        return self.executor.fetch_invoice_lines(start_date, end_date, client_ids, location_ids)

    @staticmethod
    def grouping_engine(
        start_number=None,
        legacy_order: bool = False,
        default_terms: Optional[str] = None,
        default_class: Optional[str] = None,
    ) -> InvoiceGroupingEngine:
        return InvoiceGroupingEngine(
            start_number=settings.invoice_start_number() if start_number is None else start_number,
            legacy_order=legacy_order,
            default_terms=default_terms or settings.DEFAULT_TERMS,
            default_class=settings.DEFAULT_CLASS if default_class is None else default_class,
        )

    def preview_invoices(
        self,
        start_date: date,
        end_date: date,
        client_ids: Optional[Sequence[str]] = None,
        location_ids: Optional[Sequence[str]] = None,
        columns: Sequence[ExportColumn] = PREVIEW_EXPORT_COLUMNS,
        **options: Any,
    ) -> InvoiceExport:
        """Grouped invoice rows for on-screen review before exporting."""
        lines = self.invoice_lines(start_date, end_date, client_ids, location_ids)
        return self.grouping_engine(**options).render(lines, columns)

    def export_invoices(
        self,
        start_date: date,
        end_date: date,
        client_ids: Optional[Sequence[str]] = None,
        location_ids: Optional[Sequence[str]] = None,
        start_number=None,
        columns: Sequence[ExportColumn] = DEFAULT_EXPORT_COLUMNS,
        legacy_order: bool = False,
        default_terms: Optional[str] = None,
        default_class: Optional[str] = None,
    ) -> Tuple[bytes, str, InvoiceExport]:
        """QuickBooks invoice CSV for all work in ``[start_date, end_date]``."""
        lines = self.invoice_lines(start_date, end_date, client_ids, location_ids)
        engine = self.grouping_engine(start_number, legacy_order, default_terms, default_class)
        data, export = ExportFormatter(columns).invoices(engine, lines)
        filename = invoice_filename(end_date)
        logger.info("Exported %d invoices (%d lines) to %s", export.invoice_count, export.row_count, filename)
        return data, filename, export
