"""Shared pytest fixtures for the washreport test suite."""

from __future__ import annotations

import os
from datetime import date

import pytest
from fastapi.testclient import TestClient

# ── Environment setup (must happen BEFORE importing washreport) ───────────────
os.environ["BASIC_AUTH_USERNAME"] = "testuser"
os.environ["BASIC_AUTH_PASSWORD"] = "testpass"
os.environ["PREVIEW_DEBOUNCE_SECONDS"] = "0"
os.environ.pop("WASHREPORT_DATA_FILE", None)
os.environ.pop("INVOICE_START_NUMBER", None)

AUTH = ("testuser", "testpass")


def _tables():
    """Two clients, three locations and one week plus a Monday of wash work.

    2024-01-01 is a Monday; every log except wl04 bills on Friday 2024-01-05.
    wl06 has no rate configuration and needs rate review.
    """
    return {
        "clients": [
            {"id": "c1", "client_name": "Acme Logistics", "client_code": "ACM",
             "parent_company": "Acme", "payment_terms": "Net 15",
             "billing_contact_email": "ap@acme.test", "class": "Fleet",
             "is_taxable": True, "tax_jurisdiction": "CA", "tax_rate": 7.25},
            {"id": "c2", "client_name": "Beta Transport, Inc.", "client_code": "BET",
             "parent_company": None, "payment_terms": None,
             "billing_contact_email": None, "class": None, "is_taxable": False},
        ],
        "locations": [
            {"id": "l1", "client_id": "c1", "name": "North Yard"},
            {"id": "l2", "client_id": "c1", "name": "South Yard"},
            {"id": "l3", "client_id": "c2", "name": "Beta Depot"},
        ],
        "work_types": [
            {"id": "w1", "name": "Trailer Wash", "rate_type": "per_unit"},
            {"id": "w2", "name": "Janitorial", "rate_type": "hourly"},
            {"id": "w3", "name": "Truck Wash", "rate_type": "per_unit"},
            {"id": "w4", "name": "EPA Charges", "rate_type": "per_unit"},
        ],
        "employees": [
            {"id": "e1", "name": "Dana Lee", "employee_code": "E01"},
            {"id": "e2", "name": "Sam Ortiz", "employee_code": "E02"},
        ],
        "rate_configs": [
            {"id": "r1", "client_id": "c1", "location_id": "l1", "work_type_id": "w1",
             "rate": 25.0, "frequency": "2x/week"},
            {"id": "r2", "client_id": "c1", "location_id": "l2", "work_type_id": "w2",
             "rate": 40.0, "frequency": None},
            {"id": "r3", "client_id": "c1", "location_id": "l1", "work_type_id": "w3",
             "rate": 30.0, "frequency": "weekly"},
            {"id": "r4", "client_id": "c2", "location_id": "l3", "work_type_id": "w4",
             "rate": 15.0, "frequency": None},
        ],
        "work_logs": [
            {"id": "wl01", "work_date": "2024-01-02", "employee_id": "e1", "client_id": "c1",
             "location_id": "l1", "work_type_id": "w1", "rate_config_id": "r1",
             "identifier": "TRL-100", "quantity": 2, "comment": None},
            {"id": "wl02", "work_date": "2024-01-03", "employee_id": "e2", "client_id": "c1",
             "location_id": "l1", "work_type_id": "w3", "rate_config_id": "r3",
             "identifier": "TRK-7", "quantity": 1, "comment": "cab only"},
            {"id": "wl03", "work_date": "2024-01-07", "employee_id": "e1", "client_id": "c1",
             "location_id": "l1", "work_type_id": "w1", "rate_config_id": "r1",
             "identifier": "TRL-101", "quantity": 3, "comment": None},
            {"id": "wl04", "work_date": "2024-01-08", "employee_id": "e1", "client_id": "c1",
             "location_id": "l1", "work_type_id": "w1", "rate_config_id": "r1",
             "identifier": "TRL-100", "quantity": 1, "comment": None},
            {"id": "wl05", "work_date": "2024-01-04", "employee_id": "e2", "client_id": "c1",
             "location_id": "l2", "work_type_id": "w2", "rate_config_id": "r2",
             "identifier": None, "quantity": 3, "comment": None},
            {"id": "wl06", "work_date": "2024-01-05", "employee_id": "e2", "client_id": "c2",
             "location_id": "l3", "work_type_id": "w3", "rate_config_id": None,
             "identifier": "BT-1", "quantity": 2, "comment": None},
            {"id": "wl07", "work_date": "2024-01-06", "employee_id": "e1", "client_id": "c2",
             "location_id": "l3", "work_type_id": "w4", "rate_config_id": "r4",
             "identifier": None, "quantity": 1, "comment": None},
        ],
    }


@pytest.fixture
def data_source():
    """Fresh in-memory data source with the sample tables."""
    from washreport.services import InMemoryDataSource

    return InMemoryDataSource(_tables())


class BrokenSource:
    """Data source whose work-log queries always fail; everything else delegates."""

    def __init__(self, inner):
        self.inner = inner

    def query(self, entity, filters=(), sort=(), limit=None, offset=None):
        if entity == "work_logs":
            raise RuntimeError("connection reset")
        return self.inner.query(entity, filters, sort, limit, offset)

    def count(self, entity, filters=()):
        return self.inner.count(entity, filters)

    def insert(self, entity, record):
        return self.inner.insert(entity, record)

    def update(self, entity, record):
        raise RuntimeError("read-only replica")

    def delete(self, entity, record):
        return self.inner.delete(entity, record)


@pytest.fixture
def broken_source(data_source):
    return BrokenSource(data_source)


@pytest.fixture
def today():
    return lambda: date(2024, 1, 15)


@pytest.fixture
def engine(data_source, today):
    from washreport.services import ReportEngine

    return ReportEngine(data_source, today=today)


@pytest.fixture
def client(data_source):
    """A TestClient with credentials, bound to the sample data source."""
    from washreport.api import reports
    from washreport.server import app

    app.state.data_source = data_source
    reports.preview_sessions.clear()

    test_client = TestClient(app, raise_server_exceptions=True)
    test_client.auth = AUTH
    return test_client


@pytest.fixture
def anonymous_client(data_source):
    from washreport.server import app

    app.state.data_source = data_source
    return TestClient(app)
