"""Catalog of reportable columns.

Every field a report can show is registered here once. The registry is only
used to classify columns (detail vs. aggregate) and to label them; query
construction works on raw field names in the executor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple


class ColumnId(str, Enum):
    """Stable column keys referenced by report configurations."""
    # Work details
    WORK_DATE = "work_date"
    BILLING_FRIDAY = "billing_friday"
    IDENTIFIER = "identifier"
    WORK_TYPE_NAME = "work_type_name"
    RATE_TYPE = "rate_type"
    FREQUENCY = "frequency"
    QUANTITY = "quantity"
    COMMENT = "comment"
    # Client & location
    CLIENT_NAME = "client_name"
    CLIENT_CODE = "client_code"
    PARENT_COMPANY = "parent_company"
    PAYMENT_TERMS = "payment_terms"
    LOCATION_NAME = "location_name"
    # Employee
    EMPLOYEE_NAME = "employee_name"
    EMPLOYEE_CODE = "employee_code"
    # Financial
    RATE = "rate"
    LINE_TOTAL = "line_total"
    NEEDS_RATE_REVIEW = "needs_rate_review"
    # Calculated
    TOTAL_QUANTITY = "total_quantity"
    TOTAL_REVENUE = "total_revenue"
    ENTRY_COUNT = "entry_count"
    AVG_LINE_VALUE = "avg_line_value"
    AVG_RATE = "avg_rate"


class AggregateKind(Enum):
    """Summary computation of an aggregate column."""
    SUM = "sum"
    COUNT = "count"
    MEAN = "mean"


@dataclass(frozen=True)
class ColumnDefinition:
    """Immutable registry entry for one reportable field."""

    id: str
    label: str
    category: str
    source: str                                 # attribute of the resolved row
    is_aggregate: bool = False
    is_advanced: bool = False
    is_dimension: bool = False                  # usable as a summary grouping key
    summable: bool = False                      # part of the default totals row
    aggregate: Optional[AggregateKind] = None

    def __post_init__(self):
        if self.is_aggregate and self.aggregate is None:
            raise ValueError(f"aggregate column {self.id!r} needs an aggregate kind")
        if not self.is_aggregate and self.aggregate is not None:
            raise ValueError(f"detail column {self.id!r} cannot carry an aggregate kind")

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "label": self.label,
            "category": self.category,
            "isAggregate": self.is_aggregate,
            "isAdvanced": self.is_advanced,
        }


def _detail(cid: ColumnId, label: str, category: str, **kwargs) -> ColumnDefinition:
    return ColumnDefinition(id=cid.value, label=label, category=category,
                            source=kwargs.pop("source", cid.value), **kwargs)


def _aggregate(cid: ColumnId, label: str, kind: AggregateKind, source: str, **kwargs) -> ColumnDefinition:
    return ColumnDefinition(id=cid.value, label=label, category="Calculated", source=source,
                            is_aggregate=True, aggregate=kind, **kwargs)


COLUMN_DEFINITIONS: Tuple[ColumnDefinition, ...] = (
    _detail(ColumnId.WORK_DATE, "Date", "Work Details"),
    _detail(ColumnId.BILLING_FRIDAY, "Billing Week (Fri)", "Work Details", is_advanced=True),
    _detail(ColumnId.IDENTIFIER, "Vehicle Number", "Work Details"),
    _detail(ColumnId.WORK_TYPE_NAME, "Work Type", "Work Details", is_dimension=True),
    _detail(ColumnId.RATE_TYPE, "Rate Type", "Work Details", is_advanced=True, is_dimension=True),
    _detail(ColumnId.FREQUENCY, "Frequency", "Work Details", is_dimension=True),
    _detail(ColumnId.QUANTITY, "Quantity", "Work Details", summable=True),
    _detail(ColumnId.COMMENT, "Comment", "Work Details", is_advanced=True),
    _detail(ColumnId.CLIENT_NAME, "Client Name", "Client & Location", is_dimension=True),
    _detail(ColumnId.CLIENT_CODE, "Client Code", "Client & Location", is_advanced=True, is_dimension=True),
    _detail(ColumnId.PARENT_COMPANY, "Parent Company", "Client & Location", is_advanced=True, is_dimension=True),
    _detail(ColumnId.PAYMENT_TERMS, "Payment Terms", "Client & Location", is_advanced=True),
    _detail(ColumnId.LOCATION_NAME, "Location", "Client & Location", is_dimension=True),
    _detail(ColumnId.EMPLOYEE_NAME, "Employee Name", "Employee", is_dimension=True),
    _detail(ColumnId.EMPLOYEE_CODE, "Employee ID", "Employee", is_advanced=True, is_dimension=True),
    _detail(ColumnId.RATE, "Rate ($)", "Financial"),
    _detail(ColumnId.LINE_TOTAL, "Line Total ($)", "Financial", summable=True),
    _detail(ColumnId.NEEDS_RATE_REVIEW, "Needs Rate Review", "Financial", is_advanced=True),
    _aggregate(ColumnId.TOTAL_QUANTITY, "Total Washes", AggregateKind.SUM, "quantity", summable=True),
    _aggregate(ColumnId.TOTAL_REVENUE, "Total Revenue ($)", AggregateKind.SUM, "line_total", summable=True),
    _aggregate(ColumnId.ENTRY_COUNT, "Entries", AggregateKind.COUNT, "id", summable=True),
    _aggregate(ColumnId.AVG_LINE_VALUE, "Avg Wash Value ($)", AggregateKind.MEAN, "line_total"),
    _aggregate(ColumnId.AVG_RATE, "Avg Rate ($)", AggregateKind.MEAN, "rate", is_advanced=True),
)


class ColumnRegistry:
    """Read-only lookup over a fixed set of column definitions."""

    def __init__(self, definitions: Iterable[ColumnDefinition]):
        table: Dict[str, ColumnDefinition] = {}
        for definition in definitions:
            if definition.id in table:
                raise ValueError(f"duplicate column id {definition.id!r}")
            table[definition.id] = definition
        self._table: Mapping[str, ColumnDefinition] = MappingProxyType(table)

    def list(self) -> List[ColumnDefinition]:
        return list(self._table.values())

    def by_id(self, column_id: str) -> Optional[ColumnDefinition]:
        return self._table.get(column_id)

    def __contains__(self, column_id: object) -> bool:
        return column_id in self._table

    def known(self, column_ids: Iterable[str]) -> List[ColumnDefinition]:
        """Resolve ids in order, silently skipping unknown ones."""
        resolved = []
        for cid in column_ids:
            definition = self._table.get(cid)
            if definition is not None:
                resolved.append(definition)
        return resolved

    def partition(self, column_ids: Iterable[str]) -> Tuple[List[ColumnDefinition], List[ColumnDefinition]]:
        """Split selected columns into (detail, aggregate), keeping selection order."""
        detail: List[ColumnDefinition] = []
        aggregate: List[ColumnDefinition] = []
        for definition in self.known(column_ids):
            (aggregate if definition.is_aggregate else detail).append(definition)
        return detail, aggregate

    def categories(self, include_advanced: bool = True) -> Dict[str, List[ColumnDefinition]]:
        grouped: Dict[str, List[ColumnDefinition]] = {}
        for definition in self._table.values():
            if definition.is_advanced and not include_advanced:
                continue
            grouped.setdefault(definition.category, []).append(definition)
        return grouped

    def default_sum_columns(self, column_ids: Iterable[str]) -> List[str]:
        return [d.id for d in self.known(column_ids) if d.summable]


COLUMN_REGISTRY = ColumnRegistry(COLUMN_DEFINITIONS)
