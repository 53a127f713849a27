"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from typing import Optional

# JSON fixture backing the in-memory data source (optional)
DATA_FILE = os.getenv("WASHREPORT_DATA_FILE")

BASIC_AUTH_USER = os.getenv("BASIC_AUTH_USERNAME")
BASIC_AUTH_PASS = os.getenv("BASIC_AUTH_PASSWORD")
AUTH_ENABLED = bool(BASIC_AUTH_USER and BASIC_AUTH_PASS)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

PREVIEW_ROW_LIMIT = int(os.getenv("PREVIEW_ROW_LIMIT", "20"))
PREVIEW_DEBOUNCE_SECONDS = float(os.getenv("PREVIEW_DEBOUNCE_SECONDS", "0.5"))
# Idle live-preview sessions are dropped after this long; the oldest go first past the cap
PREVIEW_SESSION_TTL_SECONDS = float(os.getenv("PREVIEW_SESSION_TTL_SECONDS", "1800"))
MAX_PREVIEW_SESSIONS = int(os.getenv("MAX_PREVIEW_SESSIONS", "200"))

DEFAULT_TERMS = os.getenv("DEFAULT_TERMS", "Net 30")
DEFAULT_CLASS = os.getenv("DEFAULT_CLASS", "")


def invoice_start_number() -> Optional[str]:
    """Raw INVOICE_START_NUMBER, read per export; the invoice engine parses it."""
    return os.getenv("INVOICE_START_NUMBER")
