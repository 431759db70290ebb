from __future__ import annotations

import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Engine

logger = logging.getLogger("campaign-harvester")


def runs_table() -> str:
    return os.getenv("HARVEST_RUNS_TABLE", "harvest_runs").strip() or "harvest_runs"


def new_run_id() -> str:
    return str(uuid.uuid4())


def log_event(event: str, **payload: Any) -> None:
    logger.info(
        "HARVEST_%s %s", event, json.dumps(payload, default=str, sort_keys=True)
    )


def _ensure_runs_table(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {runs_table()} (
                  run_id text PRIMARY KEY,
                  started_at text NOT NULL,
                  finished_at text,
                  status text NOT NULL,
                  projects_scraped integer NOT NULL DEFAULT 0,
                  rows_uploaded integer NOT NULL DEFAULT 0,
                  last_error text,
                  details_json text NOT NULL DEFAULT '{{}}'
                )
                """
            )
        )


def record_run(
    engine: Engine,
    *,
    run_id: str,
    status: str,
    started_at: str,
    finished_at: str | None = None,
    projects_scraped: int = 0,
    rows_uploaded: int = 0,
    last_error: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    _ensure_runs_table(engine)
    with engine.begin() as conn:
        conn.execute(
            sql_text(
                f"""
                INSERT INTO {runs_table()}
                (run_id, started_at, finished_at, status, projects_scraped, rows_uploaded, last_error, details_json)
                VALUES (:run_id, :started_at, :finished_at, :status, :projects_scraped, :rows_uploaded, :last_error, :details)
                ON CONFLICT (run_id) DO UPDATE SET
                  finished_at = EXCLUDED.finished_at,
                  status = EXCLUDED.status,
                  projects_scraped = EXCLUDED.projects_scraped,
                  rows_uploaded = EXCLUDED.rows_uploaded,
                  last_error = EXCLUDED.last_error,
                  details_json = EXCLUDED.details_json
                """
            ),
            {
                "run_id": run_id,
                "started_at": started_at,
                "finished_at": finished_at,
                "status": status,
                "projects_scraped": projects_scraped,
                "rows_uploaded": rows_uploaded,
                "last_error": last_error,
                "details": json.dumps(details or {}, default=str),
            },
        )


def recent_runs(engine: Engine, limit: int = 20) -> list[dict[str, Any]]:
    _ensure_runs_table(engine)
    with engine.begin() as conn:
        rows = (
            conn.execute(
                sql_text(
                    f"""
                SELECT run_id, started_at, finished_at, status,
                       projects_scraped, rows_uploaded, last_error, details_json
                FROM {runs_table()}
                ORDER BY started_at DESC
                LIMIT :limit
                """
                ),
                {"limit": limit},
            )
            .mappings()
            .all()
        )
    out: list[dict[str, Any]] = []
    for row in rows:
        data = dict(row)
        data["details"] = json.loads(data.pop("details_json") or "{}")
        out.append(data)
    return out


class StepTimer:
    def __init__(self) -> None:
        self.started = time.perf_counter()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
