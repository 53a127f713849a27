"""Live report preview with debounce and stale-response guard.

Every configuration change takes a new, strictly increasing request token.
A request waits out the debounce window, runs the full pipeline in a worker
thread and only publishes its result if no newer request was issued in the
meantime. Superseded requests are never cancelled; their results are dropped
on arrival.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .. import config as settings
from ..models import ReportConfig
from .report_engine import ReportEngine, ReportResult

logger = logging.getLogger(__name__)


@dataclass
class PreviewOutcome:
    token: int
    applied: bool
    result: Optional[ReportResult] = None


class PreviewSession:
    """Preview state of one report-builder session."""

    def __init__(
        self,
        engine: ReportEngine,
        limit: int = settings.PREVIEW_ROW_LIMIT,
        debounce_seconds: float = settings.PREVIEW_DEBOUNCE_SECONDS,
    ):
        self.engine = engine
        self.limit = limit
        self.debounce_seconds = debounce_seconds
        self._tokens = itertools.count(1)
        self.latest_token = 0
        self.applied_token = 0
        self.result: Optional[ReportResult] = None
        self.touched_at = time.monotonic()

    def touch(self) -> None:
        self.touched_at = time.monotonic()

    def next_token(self) -> int:
        self.latest_token = next(self._tokens)
        return self.latest_token

    def is_current(self, token: int) -> bool:
        return token == self.latest_token

    def apply(self, token: int, result: ReportResult) -> bool:
        """Publish ``result`` if it answers the most recent request."""
        if not self.is_current(token):
            logger.debug("Discarding stale preview result %d (latest %d)", token, self.latest_token)
            return False
        self.result = result
        self.applied_token = token
        return True

    async def refresh(self, config: ReportConfig) -> PreviewOutcome:
        self.touch()
        token = self.next_token()
        if self.debounce_seconds > 0:
            await asyncio.sleep(self.debounce_seconds)
            if not self.is_current(token):
                # Superseded while debouncing; nothing was fetched
                return PreviewOutcome(token=token, applied=False)
        result = await asyncio.to_thread(self.engine.preview, config, self.limit)
        return PreviewOutcome(token=token, applied=self.apply(token, result), result=result)

    def page(self, page: int = 1, page_size: int = 10) -> Dict[str, Any]:
        """Slice already-fetched preview rows; never triggers a fetch."""
        self.touch()
        rows: List[Dict[str, Any]] = self.result.to_dict()["rows"] if self.result else []
        page = max(page, 1)
        page_size = max(page_size, 1)
        start = (page - 1) * page_size
        return {
            "token": self.applied_token,
            "page": page,
            "page_size": page_size,
            "page_count": (len(rows) + page_size - 1) // page_size,
            "rows": rows[start:start + page_size],
        }
