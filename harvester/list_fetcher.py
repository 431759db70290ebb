"""Discovery-page listing extraction with primary/fallback backends."""
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urljoin

from .config import SelectorSet
from .errors import FetchTimeoutError, RenderError
from .observability import StepTimer, log_event
from .render import Document, Element, RenderBackend
from .types import CandidateRecord

logger = logging.getLogger("campaign-harvester")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _extractable(record: CandidateRecord) -> bool:
    return bool(record.project_name and record.creator_name)


def extract_card(card: Element, selectors: SelectorSet, base_url: str) -> CandidateRecord:
    title = card.select_one(selectors.title_anchor)
    creator = card.select_one(selectors.creator_name)

    project_name = _clean(title.own_text()) if title is not None else None
    href = _clean(title.attr("href")) if title is not None else None
    creator_name = _clean(creator.text()) if creator is not None else None

    return CandidateRecord(
        project_name=project_name,
        creator_name=creator_name,
        creator_profile_url=urljoin(base_url, href) if href else None,
    )


def extract_listings(doc: Document, selectors: SelectorSet, base_url: str) -> list[CandidateRecord]:
    return [extract_card(card, selectors, base_url) for card in doc.select(selectors.card)]


def fetch_listings(
    backend: RenderBackend,
    source_url: str,
    selectors: SelectorSet,
    timeout_s: float = 30.0,
) -> list[CandidateRecord]:
    timer = StepTimer()
    with backend.session() as session:
        doc = session.render(source_url)
        if not doc.wait_for(selectors.card, timeout_s):
            snippet = doc.snippet()
            logger.error(
                "No listing cards (%s) after %ss on %s; document starts: %s",
                selectors.card,
                timeout_s,
                source_url,
                snippet,
            )
            raise FetchTimeoutError(
                f"Listing cards did not appear within {timeout_s}s ({backend.name})",
                snippet=snippet,
            )
        records = extract_listings(doc, selectors, source_url)

    log_event(
        "FETCH",
        backend=backend.name,
        url=source_url,
        items_found=len(records),
        latency_ms=timer.elapsed_ms(),
    )
    return records


def fetch_with_fallback(
    primary: RenderBackend,
    fallback: Optional[RenderBackend],
    source_url: str,
    selectors: SelectorSet,
    timeout_s: float = 30.0,
) -> list[CandidateRecord]:
    """Try ``primary``; with no usable records or a render failure try ``fallback`` once."""
    try:
        records = fetch_listings(primary, source_url, selectors, timeout_s)
    except (RenderError, FetchTimeoutError) as exc:
        if fallback is None:
            raise
        logger.warning("Primary backend %s failed (%s); falling back to %s", primary.name, exc, fallback.name)
        return fetch_listings(fallback, source_url, selectors, timeout_s)

    if fallback is None or any(_extractable(r) for r in records):
        return records

    logger.warning("Primary backend %s found no usable listings; falling back to %s", primary.name, fallback.name)
    return fetch_listings(fallback, source_url, selectors, timeout_s)
