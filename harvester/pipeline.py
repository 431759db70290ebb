"""Harvest run: fetch listings, dedupe against the sheet, enrich, upload."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import HarvestSettings
from .dedupe import dedupe
from .enricher import enrich_batch
from .errors import RunInProgressError, StoreReadError
from .list_fetcher import fetch_with_fallback
from .observability import StepTimer, log_event, new_run_id, record_run, utc_now_iso
from .registry import RunRegistry
from .render import RenderBackend, build_backend
from .store import SheetStore
from .types import RunResult
from .uploader import upload

logger = logging.getLogger("campaign-harvester")

MESSAGE_COMPLETED = "Harvest completed"
MESSAGE_NOTHING_NEW = "No new unique projects found"

# Only taken when single_flight is enabled. Without it two overlapping runs can
# read the same snapshot and both upload the same new listing.
_single_flight = threading.Lock()


def _record(engine: Optional[Engine], **kwargs) -> None:
    if engine is None:
        return
    try:
        record_run(engine, **kwargs)
    except SQLAlchemyError as exc:
        logger.warning("Run ledger write failed: %s", exc)


def _execute(
    settings: HarvestSettings,
    *,
    primary: RenderBackend,
    fallback: Optional[RenderBackend],
    store: SheetStore,
    enrich_backend: RenderBackend,
    registry: Optional[RunRegistry],
    ledger_engine: Optional[Engine],
    sleep: Callable[[float], None],
) -> RunResult:
    run_id = new_run_id()
    started_at = utc_now_iso()
    timer = StepTimer()
    log_event("START", run_id=run_id, source_url=settings.source_url, primary=primary.name)
    _record(ledger_engine, run_id=run_id, status="running", started_at=started_at)

    projects_scraped = 0
    try:
        candidates = fetch_with_fallback(
            primary,
            fallback,
            settings.source_url,
            settings.selectors,
            settings.list_timeout_s,
        )
        projects_scraped = len(candidates)

        try:
            snapshot = store.fetch_snapshot()
        except StoreReadError as exc:
            # Availability over consistency: an unreadable sheet dedupes as empty.
            logger.error("Snapshot unavailable, treating as empty: %s", exc)
            snapshot = []

        fresh = dedupe(candidates, snapshot)
        log_event(
            "DEDUPE",
            run_id=run_id,
            candidates=len(candidates),
            snapshot_rows=len(snapshot),
            fresh=len(fresh),
        )

        if not fresh:
            result = RunResult(
                run_id=run_id,
                message=MESSAGE_NOTHING_NEW,
                projects_scraped=projects_scraped,
            )
        else:
            enriched = enrich_batch(fresh, enrich_backend, settings, sleep)
            outcome = upload(enriched, store)
            log_event("UPLOAD", run_id=run_id, uploaded=outcome.uploaded, error=outcome.error)
            result = RunResult(
                run_id=run_id,
                message=MESSAGE_COMPLETED,
                projects_scraped=projects_scraped,
                uploaded=outcome.uploaded,
                error=outcome.error,
                results=enriched,
            )
    except Exception as exc:
        _record(
            ledger_engine,
            run_id=run_id,
            status="failed",
            started_at=started_at,
            finished_at=utc_now_iso(),
            projects_scraped=projects_scraped,
            last_error=f"{type(exc).__name__}: {exc}",
        )
        log_event(
            "END",
            run_id=run_id,
            success=False,
            error_type=type(exc).__name__,
            duration_ms=timer.elapsed_ms(),
        )
        raise

    result.started_at = started_at
    result.finished_at = utc_now_iso()
    if registry is not None:
        registry.put(result)
    _record(
        ledger_engine,
        run_id=run_id,
        status="success",
        started_at=started_at,
        finished_at=result.finished_at,
        projects_scraped=result.projects_scraped,
        rows_uploaded=result.uploaded,
        last_error=result.error,
        details={"message": result.message, "source_url": settings.source_url},
    )
    log_event(
        "END",
        run_id=run_id,
        success=True,
        uploaded=result.uploaded,
        duration_ms=timer.elapsed_ms(),
    )
    return result


def run_harvest(
    settings: HarvestSettings,
    *,
    primary: RenderBackend,
    store: SheetStore,
    fallback: Optional[RenderBackend] = None,
    enrich_backend: Optional[RenderBackend] = None,
    registry: Optional[RunRegistry] = None,
    ledger_engine: Optional[Engine] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunResult:
    """
    Execute one harvest run and return its result.

    - Listing failures propagate; the caller turns them into an error response.
    - Store read failures degrade to an empty snapshot.
    - Per-record bio failures become ``ERROR_BIO`` and never abort the batch.
    - Store write failures are reported on the result with ``uploaded == 0``.
    """
    kwargs = dict(
        primary=primary,
        fallback=fallback,
        store=store,
        enrich_backend=enrich_backend or primary,
        registry=registry,
        ledger_engine=ledger_engine,
        sleep=sleep,
    )
    if not settings.single_flight:
        return _execute(settings, **kwargs)

    if not _single_flight.acquire(blocking=False):
        raise RunInProgressError("A harvest run is already in progress")
    try:
        return _execute(settings, **kwargs)
    finally:
        _single_flight.release()


def run_from_settings(
    settings: HarvestSettings,
    registry: Optional[RunRegistry] = None,
    ledger_engine: Optional[Engine] = None,
) -> RunResult:
    primary = build_backend(settings.primary_backend, settings)
    fallback_name = settings.fallback_backend
    fallback = build_backend(fallback_name, settings) if fallback_name else None
    store = SheetStore(settings.store_url, timeout_s=settings.http_timeout_s)
    return run_harvest(
        settings,
        primary=primary,
        fallback=fallback,
        store=store,
        registry=registry,
        ledger_engine=ledger_engine,
    )
