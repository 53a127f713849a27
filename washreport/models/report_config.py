"""Report configuration models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .invoice import ExportLayout


class ReportType(Enum):
    """Type of report to build."""
    UNIFIED = "unified"                       # Column-catalog driven report builder
    WASH_ENTRIES = "wash_entries"             # Legacy detail report
    CLIENT_BILLING = "client_billing"
    EMPLOYEE_PERFORMANCE = "employee_performance"
    REVENUE_ANALYSIS = "revenue_analysis"
    QUICKBOOKS_EXPORT = "quickbooks_export"   # Invoice CSV export


class FilterOperator(Enum):
    """Comparison applied by a report filter."""
    EQUALS = "equals"
    IN = "in"
    BETWEEN = "between"              # inclusive on both bounds
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


class ReportShape(Enum):
    """Overall shape of a report, derived from its selected columns."""
    DETAIL = "detail"
    AGGREGATED = "aggregated"
    MIXED = "mixed"


DATE_RANGE_PRESETS = ("today", "last_7_days", "current_month", "last_month")


@dataclass
class ReportFilter:
    """A single `{field, operator, value}` predicate."""

    field: str
    operator: FilterOperator
    value: Any

    def __post_init__(self):
        if isinstance(self.operator, str):
            self.operator = FilterOperator(self.operator)
        if self.operator == FilterOperator.IN:
            if isinstance(self.value, (str, bytes)) or not hasattr(self.value, "__iter__"):
                raise ValueError(f"'in' filter on {self.field!r} needs a list of values")
            self.value = list(self.value)
        elif self.operator == FilterOperator.BETWEEN:
            if isinstance(self.value, str):
                if self.value not in DATE_RANGE_PRESETS:
                    raise ValueError(f"unknown date range preset {self.value!r}")
            elif not isinstance(self.value, (list, tuple)) or len(self.value) != 2:
                raise ValueError(f"'between' filter on {self.field!r} needs exactly two bounds")
            else:
                self.value = list(self.value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportFilter":
        return cls(field=data["field"], operator=FilterOperator(data["operator"]), value=data.get("value"))

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "operator": self.operator.value, "value": self.value}


@dataclass
class SortSpec:
    field: str
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self):
        if isinstance(self.direction, str):
            self.direction = SortDirection(self.direction)

    @property
    def ascending(self) -> bool:
        return self.direction == SortDirection.ASC

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SortSpec":
        return cls(field=data["field"], direction=SortDirection(data.get("direction", "asc")))

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "direction": self.direction.value}


@dataclass
class ReportConfig:
    """Serializable shape of a report: columns, filters, sort and type."""

    report_type: ReportType = ReportType.UNIFIED
    columns: List[str] = field(default_factory=list)       # order matters for display/export
    filters: List[ReportFilter] = field(default_factory=list)
    sorting: List[SortSpec] = field(default_factory=list)

    def __post_init__(self):
        if isinstance(self.report_type, str):
            self.report_type = ReportType(self.report_type)
        # Drop repeated column ids, keeping the first position
        seen = set()
        self.columns = [c for c in self.columns if not (c in seen or seen.add(c))]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportConfig":
        """Build a configuration from its persisted (camelCase) form."""
        return cls(
            report_type=ReportType(data.get("reportType", ReportType.UNIFIED.value)),
            columns=list(data.get("columns") or []),
            filters=[ReportFilter.from_dict(f) for f in data.get("filters") or []],
            sorting=[SortSpec.from_dict(s) for s in data.get("sorting") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportType": self.report_type.value,
            "columns": list(self.columns),
            "filters": [f.to_dict() for f in self.filters],
            "sorting": [s.to_dict() for s in self.sorting],
        }

    def with_columns(self, columns: List[str]) -> "ReportConfig":
        return ReportConfig(
            report_type=self.report_type,
            columns=list(columns),
            filters=list(self.filters),
            sorting=list(self.sorting),
        )


@dataclass
class ReportTemplate:
    """A named, persisted report configuration plus usage metadata.

    QuickBooks export templates carry an ``ExportLayout`` instead of a
    ``ReportConfig``.
    """

    id: str
    template_name: str
    report_type: ReportType
    config: Union[ReportConfig, ExportLayout]
    description: Optional[str] = None
    created_by: Optional[str] = None
    is_shared: bool = False
    is_system_template: bool = False
    use_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_export_layout(self) -> bool:
        return self.report_type == ReportType.QUICKBOOKS_EXPORT

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ReportTemplate":
        report_type = ReportType(record.get("report_type", ReportType.UNIFIED.value))
        raw = record.get("config") or {}
        if report_type == ReportType.QUICKBOOKS_EXPORT:
            config: Union[ReportConfig, ExportLayout] = ExportLayout.from_dict(raw)
        else:
            config = ReportConfig.from_dict(raw)
        return cls(
            id=str(record["id"]),
            template_name=record["template_name"],
            description=record.get("description"),
            report_type=report_type,
            config=config,
            created_by=record.get("created_by"),
            is_shared=bool(record.get("is_shared", False)),
            is_system_template=bool(record.get("is_system_template", False)),
            use_count=int(record.get("use_count") or 0),
            last_used_at=_parse_timestamp(record.get("last_used_at")),
            created_at=_parse_timestamp(record.get("created_at")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "template_name": self.template_name,
            "description": self.description,
            "report_type": self.report_type.value,
            "config": self.config.to_dict(),
            "created_by": self.created_by,
            "is_shared": self.is_shared,
            "is_system_template": self.is_system_template,
            "use_count": self.use_count,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
