"""Turns report configurations into work-log row sets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..models import FilterOperator, InvoiceLine, RateType, ReportConfig, ReportFilter, SortSpec
from .datasource import DataSource, FetchError, QueryFilter
from .invoice_engine import billing_friday

logger = logging.getLogger(__name__)

# Attributes stored on the work_logs entity itself; anything else is resolved by a join
NATIVE_FIELDS = frozenset({
    "id",
    "work_date",
    "employee_id",
    "client_id",
    "location_id",
    "work_type_id",
    "rate_config_id",
    "identifier",
    "quantity",
    "comment",
})

DATE_FIELDS = frozenset({"work_date", "billing_friday"})

WORK_LOG_COLUMNS = sorted(NATIVE_FIELDS)

RESOLVED_COLUMNS = [
    "id", "work_date", "billing_friday", "identifier", "quantity", "comment",
    "employee_id", "employee_name", "employee_code",
    "client_id", "client_name", "client_code", "parent_company", "payment_terms",
    "contact_email", "client_class", "is_taxable", "tax_jurisdiction", "tax_rate",
    "location_id", "location_name",
    "work_type_id", "work_type_name", "rate_type",
    "rate_config_id", "frequency", "rate", "line_total", "needs_rate_review",
]

# entity -> (join key on work_logs, {source attribute: resolved column})
LOOKUPS: Dict[str, Tuple[str, Dict[str, str]]] = {
    "employees": ("employee_id", {"id": "employee_id", "name": "employee_name",
                                  "employee_code": "employee_code"}),
    "clients": ("client_id", {"id": "client_id", "client_name": "client_name",
                              "client_code": "client_code", "parent_company": "parent_company",
                              "payment_terms": "payment_terms",
                              "billing_contact_email": "contact_email", "class": "client_class",
                              "is_taxable": "is_taxable", "tax_jurisdiction": "tax_jurisdiction",
                              "tax_rate": "tax_rate"}),
    "locations": ("location_id", {"id": "location_id", "name": "location_name"}),
    "work_types": ("work_type_id", {"id": "work_type_id", "name": "work_type_name",
                                    "rate_type": "rate_type"}),
    "rate_configs": ("rate_config_id", {"id": "rate_config_id", "rate": "rate",
                                        "frequency": "frequency"}),
}

_QUERY_OPS = {
    FilterOperator.EQUALS: "eq",
    FilterOperator.IN: "in",
    FilterOperator.CONTAINS: "ilike",
    FilterOperator.GREATER_THAN: "gt",
    FilterOperator.LESS_THAN: "lt",
}


@dataclass
class FetchResult:
    """Resolved rows plus the number of rows matching before any limit."""

    frame: pd.DataFrame
    total_count: int


def resolve_date_range(value, today: date) -> Tuple[str, str]:
    """Turn a ``between`` value (two bounds or a preset name) into ISO bounds."""
    if isinstance(value, (list, tuple)):
        lower, upper = value
        return _iso(lower), _iso(upper)
    if value == "last_7_days":
        return (today - timedelta(days=7)).isoformat(), today.isoformat()
    if value == "current_month":
        first = today.replace(day=1)
        next_first = (first + timedelta(days=32)).replace(day=1)
        return first.isoformat(), (next_first - timedelta(days=1)).isoformat()
    if value == "last_month":
        last_day = today.replace(day=1) - timedelta(days=1)
        return last_day.replace(day=1).isoformat(), last_day.isoformat()
    return today.isoformat(), today.isoformat()


def _iso(value) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


class WorkLogQueryExecutor:
    """Fetches work logs for a configuration and resolves their references."""

    def __init__(self, source: DataSource, today: Callable[[], date] = date.today):
        self.source = source
        self.today = today

    # ------------------------------------------------------------------ public

    def fetch(self, config: ReportConfig, limit: Optional[int] = None) -> FetchResult:
        """Run the configuration's filters/sorting; optionally cap the result."""
        native_filters = [f for f in config.filters if f.field in NATIVE_FIELDS]
        resolved_filters = [f for f in config.filters if f.field not in NATIVE_FIELDS]
        sorting = list(config.sorting)
        pushdown = not resolved_filters and all(s.field in NATIVE_FIELDS for s in sorting)

        predicates = self._translate_filters(native_filters)
        if pushdown:
            order = [(s.field, s.ascending) for s in sorting if s.field != "id"] + [("id", True)]
            records = self._query("work_logs", predicates, order, limit)
            total = self.source.count("work_logs", predicates) if limit is not None else len(records)
            return FetchResult(frame=self._resolve(records), total_count=total)

        records = self._query("work_logs", predicates, [("id", True)], None)
        frame = self._resolve(records)
        for flt in resolved_filters:
            frame = self._apply_frame_filter(frame, flt)
        frame = self._sort_frame(frame, sorting)
        total = len(frame)
        if limit is not None:
            frame = frame.head(limit)
        return FetchResult(frame=frame.reset_index(drop=True), total_count=total)

    def fetch_invoice_lines(
        self,
        start_date: date,
        end_date: date,
        client_ids: Optional[Iterable[str]] = None,
        location_ids: Optional[Iterable[str]] = None,
    ) -> List[InvoiceLine]:
        """Work-log rows in ``[start_date, end_date]`` as invoice line items."""
        filters = [ReportFilter("work_date", FilterOperator.BETWEEN, [start_date, end_date])]
        if client_ids:
            filters.append(ReportFilter("client_id", FilterOperator.IN, list(client_ids)))
        if location_ids:
            filters.append(ReportFilter("location_id", FilterOperator.IN, list(location_ids)))
        config = ReportConfig(filters=filters, sorting=[SortSpec("work_date")])
        frame = self.fetch(config).frame
        return [self._to_invoice_line(row) for row in frame.to_dict("records")]

    # --------------------------------------------------------------- internals

    def _query(self, entity, filters, sort, limit) -> List[Dict]:
        try:
            return self.source.query(entity, filters, sort, limit=limit)
        except FetchError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Query on %s failed", entity, exc_info=True)
            raise FetchError(f"query on {entity} failed: {exc}", entity=entity) from exc

    def _between_bounds(self, flt: ReportFilter) -> Tuple:
        if flt.field in DATE_FIELDS:
            return resolve_date_range(flt.value, self.today())
        if isinstance(flt.value, str):
            raise FetchError(
                f"malformed query: date range preset {flt.value!r} used on {flt.field!r}",
                entity="work_logs",
            )
        lower, upper = flt.value
        return lower, upper

    def _translate_filters(self, filters: Sequence[ReportFilter]) -> List[QueryFilter]:
        predicates: List[QueryFilter] = []
        for flt in filters:
            if flt.operator == FilterOperator.BETWEEN:
                lower, upper = self._between_bounds(flt)
                predicates.append(QueryFilter(flt.field, "gte", lower))
                predicates.append(QueryFilter(flt.field, "lte", upper))
            else:
                value = flt.value
                if flt.field in DATE_FIELDS and flt.operator != FilterOperator.IN:
                    value = _iso(value)
                predicates.append(QueryFilter(flt.field, _QUERY_OPS[flt.operator], value))
        return predicates

    def _lookup(self, entity: str, ids: Iterable, mapping: Dict[str, str]) -> pd.DataFrame:
        wanted = sorted({i for i in ids if i is not None and not _is_nan(i)}, key=str)
        columns = list(mapping.values())
        if not wanted:
            return pd.DataFrame(columns=columns, dtype=object)
        records = self._query(entity, [QueryFilter("id", "in", wanted)], [("id", True)], None)
        rows = [{target: rec.get(src) for src, target in mapping.items()} for rec in records]
        frame = pd.DataFrame(rows, columns=columns, dtype=object)
        return frame.drop_duplicates(subset=columns[0])

    def _resolve(self, records: List[Dict]) -> pd.DataFrame:
        """Join employees, clients, locations, work types and rates onto work logs."""
        frame = pd.DataFrame(
            [{c: rec.get(c) for c in WORK_LOG_COLUMNS} for rec in records],
            columns=WORK_LOG_COLUMNS,
            dtype=object,
        )
        for entity, (key, mapping) in LOOKUPS.items():
            lookup = self._lookup(entity, frame[key].tolist(), mapping)
            frame = frame.merge(lookup, how="left", on=key)

        frame["work_date"] = pd.to_datetime(frame["work_date"], errors="coerce").dt.date
        frame["billing_friday"] = frame["work_date"].map(
            lambda d: billing_friday(d) if isinstance(d, date) and pd.notna(d) else None
        )
        frame["quantity"] = pd.to_numeric(frame["quantity"], errors="coerce").fillna(0.0)
        frame["rate"] = pd.to_numeric(frame["rate"], errors="coerce")
        frame["line_total"] = (frame["quantity"] * frame["rate"]).round(2)
        frame["needs_rate_review"] = frame["rate"].isna()
        frame["rate_type"] = frame["rate_type"].where(frame["rate_type"].notna(), RateType.PER_UNIT)
        frame["is_taxable"] = frame["is_taxable"].fillna(False).astype(bool)
        return frame[RESOLVED_COLUMNS]

    def _apply_frame_filter(self, frame: pd.DataFrame, flt: ReportFilter) -> pd.DataFrame:
        if flt.field not in frame.columns:
            raise FetchError(f"malformed query: unknown filter field {flt.field!r}", entity="work_logs")
        series = frame[flt.field]
        if flt.field in DATE_FIELDS:
            series = series.map(lambda d: d.isoformat() if isinstance(d, date) and pd.notna(d) else None)

        op = flt.operator
        if op == FilterOperator.EQUALS:
            mask = series == flt.value
        elif op == FilterOperator.IN:
            mask = series.isin(flt.value)
        elif op == FilterOperator.CONTAINS:
            mask = series.astype(str).str.contains(str(flt.value), case=False, regex=False, na=False)
            mask &= series.notna()
        else:
            if op == FilterOperator.BETWEEN:
                lower, upper = self._between_bounds(flt)
                checks = [(lambda v, b=lower: v >= b), (lambda v, b=upper: v <= b)]
            elif op == FilterOperator.GREATER_THAN:
                checks = [lambda v: v > flt.value]
            else:
                checks = [lambda v: v < flt.value]
            try:
                mask = series.map(lambda v: v is not None and not _is_nan(v) and all(c(v) for c in checks))
            except TypeError as exc:
                raise FetchError(f"malformed query on {flt.field!r}: {exc}", entity="work_logs") from exc
        return frame[mask.astype(bool)]

    @staticmethod
    def _sort_frame(frame: pd.DataFrame, sorting: Sequence[SortSpec]) -> pd.DataFrame:
        by: List[str] = []
        ascending: List[bool] = []
        for spec in sorting:
            if spec.field not in frame.columns:
                raise FetchError(f"malformed query: unknown sort field {spec.field!r}", entity="work_logs")
            if spec.field != "id":
                by.append(spec.field)
                ascending.append(spec.ascending)
        by.append("id")
        ascending.append(True)
        try:
            return frame.sort_values(by=by, ascending=ascending, kind="mergesort", na_position="last")
        except TypeError as exc:
            raise FetchError(f"cannot order rows: {exc}", entity="work_logs") from exc

    @staticmethod
    def _to_invoice_line(row: Dict) -> InvoiceLine:
        rate = row.get("rate")
        tax_rate = row.get("tax_rate")
        return InvoiceLine(
            client_id=str(row.get("client_id")),
            client_name=_text(row.get("client_name")),
            location_id=str(row.get("location_id")),
            location_name=_text(row.get("location_name")),
            work_type_id=_optional(row.get("work_type_id")),
            work_type_name=_text(row.get("work_type_name")),
            work_date=row["work_date"],
            quantity=float(row.get("quantity") or 0),
            rate=None if rate is None or _is_nan(rate) else float(rate),
            rate_type=_text(row.get("rate_type")) or RateType.PER_UNIT,
            frequency=_optional(row.get("frequency")),
            parent_company=_optional(row.get("parent_company")),
            terms=_optional(row.get("payment_terms")),
            client_class=_optional(row.get("client_class")),
            contact_email=_optional(row.get("contact_email")),
            is_taxable=bool(row.get("is_taxable")),
            tax_jurisdiction=_optional(row.get("tax_jurisdiction")),
            tax_rate=None if tax_rate is None or _is_nan(tax_rate) else float(tax_rate),
            identifier=_optional(row.get("identifier")),
        )


def _is_nan(value) -> bool:
    return isinstance(value, float) and np.isnan(value)


def _optional(value) -> Optional[str]:
    if value is None or _is_nan(value) or value == "":
        return None
    return str(value)


def _text(value) -> str:
    return _optional(value) or ""
