"""Request bodies for the report, invoice and template endpoints."""

from __future__ import annotations

from datetime import date
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from ..models import (
    DEFAULT_EXPORT_COLUMNS,
    ExportColumn,
    ExportLayout,
    FilterOperator,
    ReportConfig,
    ReportFilter,
    ReportType,
    SortDirection,
    SortSpec,
)


class FilterPayload(BaseModel):
    field: str
    operator: FilterOperator
    value: Any = None


class SortPayload(BaseModel):
    field: str
    direction: SortDirection = SortDirection.ASC


class ReportConfigPayload(BaseModel):
    report_type: ReportType = ReportType.UNIFIED
    columns: List[str] = Field(default_factory=list)
    filters: List[FilterPayload] = Field(default_factory=list)
    sorting: List[SortPayload] = Field(default_factory=list)

    def to_config(self) -> ReportConfig:
        """Model form; raises ``ValueError`` for malformed filter values."""
        return ReportConfig(
            report_type=self.report_type,
            columns=list(self.columns),
            filters=[ReportFilter(f.field, f.operator, f.value) for f in self.filters],
            sorting=[SortSpec(s.field, s.direction) for s in self.sorting],
        )


class ReportExportRequest(BaseModel):
    config: ReportConfigPayload
    format: Literal["xlsx", "csv"] = "xlsx"
    template_name: Optional[str] = None
    sum_columns: Optional[List[str]] = None   # None: every summable selected column
    add_totals: bool = True


class ExportColumnPayload(BaseModel):
    id: Optional[str] = None
    field_key: str
    header_name: Optional[str] = None
    first_row_only: bool = False

    def to_column(self) -> ExportColumn:
        return ExportColumn(
            id=self.id or self.field_key,
            field_key=self.field_key,
            header_name=self.header_name or self.field_key,
            first_row_only=self.first_row_only,
        )


class InvoiceExportRequest(BaseModel):
    start_date: date
    end_date: date
    layout_id: Optional[str] = None          # saved export layout; explicit fields below win
    client_ids: Optional[List[str]] = None
    location_ids: Optional[List[str]] = None
    start_number: Optional[Union[int, str]] = None
    columns: Optional[List[ExportColumnPayload]] = None
    legacy_order: bool = False
    default_terms: Optional[str] = None
    default_class: Optional[str] = None

    def export_columns(self):
        if not self.columns:
            return DEFAULT_EXPORT_COLUMNS
        return tuple(c.to_column() for c in self.columns)


class ExportLayoutPayload(BaseModel):
    columns: List[ExportColumnPayload] = Field(min_length=1)
    default_terms: Optional[str] = None
    default_class: Optional[str] = None
    invoice_date_mode: Optional[Literal["export_date", "end_date"]] = None

    def to_layout(self) -> ExportLayout:
        return ExportLayout(
            columns=[c.to_column() for c in self.columns],
            default_terms=self.default_terms,
            default_class=self.default_class,
            invoice_date_mode=self.invoice_date_mode,
        )


class LayoutCreate(BaseModel):
    template_name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    layout: ExportLayoutPayload
    created_by: Optional[str] = None
    is_shared: bool = True


class TemplateCreate(BaseModel):
    template_name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    config: ReportConfigPayload
    created_by: Optional[str] = None
    is_shared: bool = False


class TemplateDuplicate(BaseModel):
    created_by: Optional[str] = None
