"""Tests for work-log fetching, joins, filtering and sorting."""

from __future__ import annotations

from datetime import date

import pytest


def _config(columns=("client_name",), filters=(), sorting=()):
    from washreport.models import ReportConfig, ReportFilter, SortSpec

    return ReportConfig(
        columns=list(columns),
        filters=[ReportFilter(*f) for f in filters],
        sorting=[SortSpec(*s) for s in sorting],
    )


# ── Joins ─────────────────────────────────────────────────────────────────────

def test_fetch_resolves_references(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    result = WorkLogQueryExecutor(data_source, today=today).fetch(_config())
    frame = result.frame.set_index("id")

    assert result.total_count == 7
    assert frame.loc["wl01", "client_name"] == "Acme Logistics"
    assert frame.loc["wl01", "employee_name"] == "Dana Lee"
    assert frame.loc["wl01", "location_name"] == "North Yard"
    assert frame.loc["wl01", "frequency"] == "2x/week"
    assert frame.loc["wl01", "line_total"] == 50.0
    assert frame.loc["wl03", "billing_friday"] == date(2024, 1, 5)
    assert frame.loc["wl05", "rate_type"] == "hourly"


def test_missing_rate_flags_review(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    frame = WorkLogQueryExecutor(data_source, today=today).fetch(_config()).frame.set_index("id")
    assert bool(frame.loc["wl06", "needs_rate_review"]) is True
    assert bool(frame.loc["wl01", "needs_rate_review"]) is False


# ── Filters ───────────────────────────────────────────────────────────────────

def test_date_between_is_inclusive(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    config = _config(filters=[("work_date", "between", ["2024-01-02", "2024-01-05"])])
    frame = WorkLogQueryExecutor(data_source, today=today).fetch(config).frame
    assert sorted(frame["id"]) == ["wl01", "wl02", "wl05", "wl06"]


@pytest.mark.parametrize("preset,expected", [
    ("current_month", 7),
    ("last_month", 0),
    ("last_7_days", 1),
])
def test_date_presets(data_source, today, preset, expected):
    from washreport.services import WorkLogQueryExecutor

    config = _config(filters=[("work_date", "between", preset)])
    assert WorkLogQueryExecutor(data_source, today=today).fetch(config).total_count == expected


def test_resolved_attribute_filter(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    config = _config(filters=[("client_name", "equals", "Beta Transport, Inc.")])
    frame = WorkLogQueryExecutor(data_source, today=today).fetch(config).frame
    assert list(frame["id"]) == ["wl06", "wl07"]


def test_native_in_and_comparison_filters(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    executor = WorkLogQueryExecutor(data_source, today=today)
    in_locations = executor.fetch(_config(filters=[("location_id", "in", ["l2", "l3"])]))
    assert sorted(in_locations.frame["id"]) == ["wl05", "wl06", "wl07"]

    bigger = executor.fetch(_config(filters=[("quantity", "greater_than", 1)]))
    assert sorted(bigger.frame["id"]) == ["wl01", "wl03", "wl05", "wl06"]


def test_contains_is_case_insensitive(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    executor = WorkLogQueryExecutor(data_source, today=today)
    native = executor.fetch(_config(filters=[("identifier", "contains", "trl")]))
    assert sorted(native.frame["id"]) == ["wl01", "wl03", "wl04"]

    resolved = executor.fetch(_config(filters=[("employee_name", "contains", "ORTIZ")]))
    assert sorted(resolved.frame["id"]) == ["wl02", "wl05", "wl06"]


def test_unknown_filter_field_is_fetch_error(data_source, today):
    from washreport.services import FetchError, WorkLogQueryExecutor

    with pytest.raises(FetchError):
        WorkLogQueryExecutor(data_source, today=today).fetch(_config(filters=[("bogus", "equals", 1)]))


@pytest.mark.parametrize("field,preset", [("quantity", "today"), ("rate", "last_month")])
def test_date_preset_on_non_date_field_is_fetch_error(data_source, today, field, preset):
    from washreport.services import FetchError, WorkLogQueryExecutor

    executor = WorkLogQueryExecutor(data_source, today=today)
    with pytest.raises(FetchError, match="preset"):
        executor.fetch(_config(filters=[(field, "between", preset)]))


# ── Sorting and limits ────────────────────────────────────────────────────────

def test_sort_on_resolved_field_uses_id_tiebreak(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    config = _config(sorting=[("client_name", "desc")])
    frame = WorkLogQueryExecutor(data_source, today=today).fetch(config).frame
    assert list(frame["id"]) == ["wl06", "wl07", "wl01", "wl02", "wl03", "wl04", "wl05"]


def test_native_sort_and_limit_are_pushed_down(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    config = _config(sorting=[("work_date", "desc")])
    result = WorkLogQueryExecutor(data_source, today=today).fetch(config, limit=3)
    assert list(result.frame["id"]) == ["wl04", "wl03", "wl07"]
    assert result.total_count == 7


def test_limit_after_post_join_filter_keeps_total(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    config = _config(filters=[("client_name", "equals", "Acme Logistics")])
    result = WorkLogQueryExecutor(data_source, today=today).fetch(config, limit=2)
    assert len(result.frame) == 2
    assert result.total_count == 5


def test_backend_failure_becomes_fetch_error(broken_source, today):
    from washreport.services import FetchError, WorkLogQueryExecutor

    with pytest.raises(FetchError, match="connection reset"):
        WorkLogQueryExecutor(broken_source, today=today).fetch(_config())


# ── Invoice lines ─────────────────────────────────────────────────────────────

def test_fetch_invoice_lines(data_source, today):
    from washreport.services import WorkLogQueryExecutor

    lines = WorkLogQueryExecutor(data_source, today=today).fetch_invoice_lines(
        date(2024, 1, 1), date(2024, 1, 7), client_ids=["c1"],
    )
    assert [l.work_date for l in lines] == [date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4), date(2024, 1, 7)]
    first = lines[0]
    assert first.parent_company == "Acme"
    assert first.terms == "Net 15"
    assert first.client_class == "Fleet"
    assert first.is_taxable is True
    assert first.rate == 25.0
