from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Iterable

from .errors import StoreWriteError
from .observability import utc_now_iso
from .store import SheetStore
from .types import (
    COL_CREATOR_BIO,
    COL_CREATOR_NAME,
    COL_CREATOR_PROFILE,
    COL_ID,
    COL_PROJECT_NAME,
    COL_SCRAPED_AT,
    EnrichedRecord,
    UploadResult,
)

logger = logging.getLogger("campaign-harvester")


def to_row(record: EnrichedRecord, row_id: str, scraped_at: str) -> dict[str, Any]:
    return {
        COL_ID: row_id,
        COL_PROJECT_NAME: record.project_name,
        COL_CREATOR_NAME: record.creator_name,
        COL_CREATOR_PROFILE: record.creator_profile_url,
        COL_CREATOR_BIO: record.creator_bio,
        COL_SCRAPED_AT: scraped_at,
    }


def upload(
    records: Iterable[EnrichedRecord],
    store: SheetStore,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    clock: Callable[[], str] = utc_now_iso,
) -> UploadResult:
    """Write ``records`` in one batch. Failures drop the whole batch, no retry."""
    records = list(records)
    if not records:
        logger.info("No new unique projects to upload.")
        return UploadResult(uploaded=0)

    rows = [to_row(r, id_factory(), clock()) for r in records]
    try:
        store.write_rows(rows)
    except StoreWriteError as exc:
        logger.error("Upload error: %s", exc)
        return UploadResult(uploaded=0, error=str(exc))

    logger.info("Uploaded %s new rows to sheet.", len(rows))
    return UploadResult(uploaded=len(rows))
