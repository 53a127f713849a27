"""Report shape detection and aggregate computation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..models import COLUMN_REGISTRY, AggregateKind, ColumnDefinition, ColumnRegistry, ReportShape

logger = logging.getLogger(__name__)

SECTION_KEY = "__section__"
SENTINEL_LABEL = "--- Summary ---"


class RowSection(Enum):
    """Which part of a report a row belongs to."""
    DATA = "data"              # detail rows, or the rows of an aggregated report
    SENTINEL = "sentinel"      # separator between detail and summary in mixed reports
    SUMMARY = "summary"


@dataclass
class ShapedReport:
    shape: ReportShape
    columns: List[ColumnDefinition]
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def data_rows(self) -> List[Dict[str, Any]]:
        return [r for r in self.rows if r[SECTION_KEY] == RowSection.DATA.value]

    @property
    def summary_rows(self) -> List[Dict[str, Any]]:
        return [r for r in self.rows if r[SECTION_KEY] == RowSection.SUMMARY.value]


def classify(columns: Sequence[ColumnDefinition]) -> ReportShape:
    """detail (no aggregates), aggregated (only aggregates) or mixed."""
    aggregates = sum(1 for c in columns if c.is_aggregate)
    if aggregates == 0:
        return ReportShape.DETAIL
    if aggregates == len(columns):
        return ReportShape.AGGREGATED
    return ReportShape.MIXED


def to_python(value: Any) -> Any:
    """Plain Python scalar for a DataFrame cell; NaN/NaT become None."""
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    if value is pd.NaT:
        return None
    return value


def aggregate_value(kind: AggregateKind, series: pd.Series) -> Optional[float]:
    """Sum, count or mean of a column; nulls never take part."""
    numeric = pd.to_numeric(series, errors="coerce").dropna()
    if kind == AggregateKind.COUNT:
        return int(series.notna().sum())
    if kind == AggregateKind.SUM:
        return round(float(numeric.sum()), 2)
    if numeric.empty:
        return None
    return round(float(numeric.sum()) / len(numeric), 2)


class ReportShaper:
    """Builds the row layout of a report from resolved work-log rows."""

    def __init__(self, registry: ColumnRegistry = COLUMN_REGISTRY):
        self.registry = registry

    def shape(self, frame: pd.DataFrame, column_ids: Sequence[str]) -> ShapedReport:
        columns = self.registry.known(column_ids)
        shape = classify(columns)
        report = ShapedReport(shape=shape, columns=columns)
        if frame.empty or not columns:
            return report

        detail = [c for c in columns if not c.is_aggregate]
        aggregates = [c for c in columns if c.is_aggregate]

        if shape == ReportShape.DETAIL:
            report.rows = self._detail_rows(frame, columns)
        elif shape == ReportShape.AGGREGATED:
            report.rows = self._summary_rows(frame, columns, [], aggregates, RowSection.DATA)
        else:
            dimensions = [c for c in detail if c.is_dimension]
            report.rows = self._detail_rows(frame, columns)
            report.rows.append(self._sentinel_row(columns))
            report.rows.extend(
                self._summary_rows(frame, columns, dimensions, aggregates, RowSection.SUMMARY)
            )
        logger.debug("Shaped %s report: %d rows from %d records", shape.value, len(report.rows), len(frame))
        return report

    @staticmethod
    def _detail_rows(frame: pd.DataFrame, columns: Sequence[ColumnDefinition]) -> List[Dict[str, Any]]:
        rows = []
        for record in frame.to_dict("records"):
            row: Dict[str, Any] = {SECTION_KEY: RowSection.DATA.value}
            for column in columns:
                row[column.id] = None if column.is_aggregate else to_python(record.get(column.source))
            rows.append(row)
        return rows

    @staticmethod
    def _sentinel_row(columns: Sequence[ColumnDefinition]) -> Dict[str, Any]:
        row: Dict[str, Any] = {SECTION_KEY: RowSection.SENTINEL.value}
        for idx, column in enumerate(columns):
            row[column.id] = SENTINEL_LABEL if idx == 0 else None
        return row

    @staticmethod
    def _summary_rows(
        frame: pd.DataFrame,
        columns: Sequence[ColumnDefinition],
        dimensions: Sequence[ColumnDefinition],
        aggregates: Sequence[ColumnDefinition],
        section: RowSection,
    ) -> List[Dict[str, Any]]:
        """One row per distinct combination of the dimension columns (or one row)."""
        if dimensions:
            keys = [d.source for d in dimensions]
            grouped = [(k if isinstance(k, tuple) else (k,), g)
                       for k, g in frame.groupby(keys, dropna=False, sort=False)]
        else:
            grouped = [((), frame)]

        rows = []
        for key, group in grouped:
            values = dict(zip((d.id for d in dimensions), key))
            row: Dict[str, Any] = {SECTION_KEY: section.value}
            for column in columns:
                if column.is_aggregate:
                    row[column.id] = aggregate_value(column.aggregate, group[column.source])
                else:
                    row[column.id] = to_python(values.get(column.id))
            rows.append(row)
        return rows
