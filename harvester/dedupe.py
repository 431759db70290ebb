from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping, Optional

from .types import COL_CREATOR_NAME, COL_PROJECT_NAME, CandidateRecord

logger = logging.getLogger("campaign-harvester")

_WHITESPACE_RE = re.compile(r"\s+")


def normalize(value: Optional[Any]) -> str:
    """Lowercase, collapse whitespace runs, trim. Missing values become ''."""
    if value is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value).lower()).strip()


def composite_key(project_name: Optional[Any], creator_name: Optional[Any]) -> str:
    return f"{normalize(project_name)}|{normalize(creator_name)}"


def snapshot_keys(snapshot: Iterable[Mapping[str, Any]]) -> set[str]:
    keys = set()
    for row in snapshot:
        if not isinstance(row, Mapping):
            continue
        keys.add(composite_key(row.get(COL_PROJECT_NAME), row.get(COL_CREATOR_NAME)))
    return keys


def dedupe(
    candidates: Iterable[CandidateRecord],
    snapshot: Iterable[Mapping[str, Any]],
) -> list[CandidateRecord]:
    seen = snapshot_keys(snapshot)
    fresh: list[CandidateRecord] = []
    incomplete = 0
    duplicates = 0

    for candidate in candidates:
        if not normalize(candidate.project_name) or not normalize(candidate.creator_name):
            incomplete += 1
            continue
        key = composite_key(candidate.project_name, candidate.creator_name)
        if key in seen:
            duplicates += 1
            continue
        # Guard against the same card appearing twice in one listing.
        seen.add(key)
        fresh.append(candidate)

    logger.info(
        "Dedupe: %s new, %s already stored, %s incomplete",
        len(fresh),
        duplicates,
        incomplete,
    )
    return fresh
