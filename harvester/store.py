"""Sheet store client (JSON rows over HTTP)."""
from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from .errors import StoreReadError, StoreWriteError
from .observability import StepTimer, log_event

logger = logging.getLogger("campaign-harvester")


class SheetStore:
    def __init__(
        self,
        url: str,
        timeout_s: float = 30.0,
        http: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout_s = timeout_s
        self.http = http or requests.Session()

    def fetch_snapshot(self) -> list[dict[str, Any]]:
        """Current rows. A non-list body is logged and treated as empty."""
        if not self.url:
            raise StoreReadError("SHEET_STORE_URL not set")

        timer = StepTimer()
        try:
            r = self.http.get(self.url, timeout=self.timeout_s)
            r.raise_for_status()
            payload = r.json()
        except (requests.RequestException, ValueError) as exc:
            raise StoreReadError(f"Sheet read failed: {exc}") from exc

        if not isinstance(payload, list):
            logger.warning(
                "Sheet read returned %s instead of a row list; ignoring it",
                type(payload).__name__,
            )
            return []

        rows = [row for row in payload if isinstance(row, dict)]
        if not rows:
            logger.info("No existing rows in sheet. First run.")
        log_event("SNAPSHOT", rows=len(rows), latency_ms=timer.elapsed_ms())
        return rows

    def write_rows(self, rows: list[dict[str, Any]]) -> None:
        if not self.url:
            raise StoreWriteError("SHEET_STORE_URL not set")

        timer = StepTimer()
        try:
            r = self.http.post(
                self.url,
                json=rows,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_s,
            )
            r.raise_for_status()
        except requests.RequestException as exc:
            raise StoreWriteError(f"Sheet write failed: {exc}") from exc

        log_event("WRITE", rows_inserted=len(rows), duration_ms=timer.elapsed_ms())
