"""Error taxonomy for a harvest run."""
from __future__ import annotations


class HarvestError(RuntimeError):
    """Base class for failures raised by pipeline stages."""


class RenderError(HarvestError):
    """The render backend could not produce a document."""


class FetchTimeoutError(HarvestError):
    """Listing cards never materialized in the rendered document."""

    def __init__(self, message: str, snippet: str = ""):
        super().__init__(message)
        self.snippet = snippet


class EnrichmentError(HarvestError):
    """Biography could not be read for a single record."""


class StoreReadError(HarvestError):
    """The sheet store snapshot could not be fetched."""


class StoreWriteError(HarvestError):
    """The sheet store rejected or never received a batch write."""


class RunInProgressError(HarvestError):
    """Another run holds the single-flight lock."""
