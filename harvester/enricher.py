"""
Creator biography enrichment.

Bios are streamed in client-side after the profile shell loads, so each record
gets a bounded shell wait followed by a scroll-and-poll loop. Failures are
absorbed per record: the bio becomes ``ERROR_BIO`` and the batch moves on.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

from .config import HarvestSettings
from .errors import EnrichmentError, RenderError
from .observability import StepTimer, log_event
from .render import RenderBackend, RenderSession
from .types import ERROR_BIO, NO_BIO, CandidateRecord, EnrichedRecord

logger = logging.getLogger("campaign-harvester")

Sleeper = Callable[[float], None]


def bio_url(profile_url: Optional[str], suffix: str = "/creator_bio") -> str:
    """Drop query string and fragment from the profile URL and append ``suffix``."""
    if not profile_url:
        raise EnrichmentError("Record has no creator profile URL")
    parts = urlsplit(profile_url.strip())
    path = parts.path.rstrip("/") + "/" + suffix.lstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def read_bio(
    session: RenderSession,
    url: str,
    settings: HarvestSettings,
    sleep: Sleeper = time.sleep,
) -> str:
    selectors = settings.selectors
    doc = session.render(url)

    if not doc.wait_for(selectors.profile_shell, settings.profile_timeout_s):
        raise EnrichmentError(
            f"Profile shell {selectors.profile_shell!r} not loaded within {settings.profile_timeout_s}s"
        )

    for attempt in range(1, settings.bio_poll_attempts + 1):
        el = doc.select_one(selectors.bio_text)
        if el is not None:
            text = el.text().strip()
            logger.debug("Bio found for %s on attempt %s", url, attempt)
            return text or NO_BIO
        if attempt < settings.bio_poll_attempts:
            doc.scroll()
            sleep(settings.bio_poll_delay_s)

    raise EnrichmentError(
        f"Bio element {selectors.bio_text!r} absent after {settings.bio_poll_attempts} attempts"
    )


def enrich(
    record: CandidateRecord,
    session: RenderSession,
    settings: HarvestSettings,
    sleep: Sleeper = time.sleep,
) -> EnrichedRecord:
    enriched = EnrichedRecord.from_candidate(record)
    try:
        url = bio_url(record.creator_profile_url, settings.bio_path_suffix)
        enriched.creator_bio = read_bio(session, url, settings, sleep)
    except Exception as exc:
        logger.warning(
            "Bio fetch failed for %r (%s): %s",
            record.project_name,
            type(exc).__name__,
            exc,
        )
        enriched.creator_bio = ERROR_BIO
    return enriched


def enrich_batch(
    records: Iterable[CandidateRecord],
    backend: RenderBackend,
    settings: HarvestSettings,
    sleep: Sleeper = time.sleep,
) -> list[EnrichedRecord]:
    """Enrich serially over one backend session, pausing between records."""
    records = list(records)
    if not records:
        return []

    timer = StepTimer()
    out: list[EnrichedRecord] = []
    try:
        with backend.session() as session:
            for i, record in enumerate(records):
                if i:
                    sleep(settings.politeness_delay_s)
                out.append(enrich(record, session, settings, sleep))
    except RenderError as exc:
        # Session could not be opened (or closed); the rest degrade to ERROR_BIO.
        logger.error("Enrichment session on %s failed: %s", backend.name, exc)
        out.extend(EnrichedRecord.from_candidate(r) for r in records[len(out):])

    failed = sum(1 for r in out if r.creator_bio == ERROR_BIO)
    log_event(
        "ENRICH",
        backend=backend.name,
        records=len(out),
        failed=failed,
        latency_ms=timer.elapsed_ms(),
    )
    return out
