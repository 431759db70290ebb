"""Environment-driven settings and the swappable selector set."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("campaign-harvester")

DEFAULT_SOURCE_URL = (
    "https://www.kickstarter.com/discover/advanced?category_id=3&sort=newest"
)
DEFAULT_PROXY_URL = "https://api.brightdata.com/request"

BACKEND_BROWSER = "browser"
BACKEND_PROXY = "proxy"


class SelectorSet(BaseModel):
    """CSS selectors for the target site's markup, which we do not control."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    card: str = ".js-react-proj-card"
    title_anchor: str = ".project-card__title"
    creator_name: str = ".project-card__creator .do-not-visually-track"
    profile_shell: str = "main"
    bio_text: str = ".creator-bio-details .readability"


class HarvestSettings(BaseSettings):
    source_url: str = Field(DEFAULT_SOURCE_URL, alias="HARVEST_SOURCE_URL")
    store_url: str = Field("", alias="SHEET_STORE_URL")
    proxy_url: str = Field(DEFAULT_PROXY_URL, alias="RENDER_PROXY_URL")
    proxy_token: str = Field("", alias="RENDER_PROXY_TOKEN")
    proxy_zone: str = Field("web_unlocker1", alias="RENDER_PROXY_ZONE")
    proxy_render: bool = Field(True, alias="RENDER_PROXY_RENDER")
    primary_backend: Literal["browser", "proxy"] = Field(
        BACKEND_BROWSER, alias="HARVEST_PRIMARY_BACKEND"
    )
    use_fallback: bool = Field(True, alias="HARVEST_FALLBACK")
    headless: bool = Field(True, alias="HARVEST_HEADLESS")
    list_timeout_s: float = Field(30.0, alias="LIST_TIMEOUT_S", gt=0)
    profile_timeout_s: float = Field(20.0, alias="PROFILE_TIMEOUT_S", gt=0)
    navigation_timeout_s: float = Field(45.0, alias="NAVIGATION_TIMEOUT_S", gt=0)
    bio_poll_attempts: int = Field(10, alias="BIO_POLL_ATTEMPTS", ge=1)
    bio_poll_delay_s: float = Field(1.25, alias="BIO_POLL_DELAY_S", ge=0)
    politeness_delay_s: float = Field(1.0, alias="POLITENESS_DELAY_S", ge=0)
    bio_path_suffix: str = Field("/creator_bio", alias="BIO_PATH_SUFFIX")
    http_timeout_s: float = Field(30.0, alias="HTTP_TIMEOUT_S", gt=0)
    single_flight: bool = Field(False, alias="HARVEST_SINGLE_FLIGHT")
    registry_size: int = Field(20, alias="RUN_REGISTRY_SIZE", ge=1)
    # Complex field: the env value is decoded as JSON.
    selectors: SelectorSet = Field(default_factory=SelectorSet, alias="HARVEST_SELECTORS_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    @field_validator("primary_backend", mode="before")
    @classmethod
    def _lower_backend(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def fallback_backend(self) -> Optional[str]:
        if not self.use_fallback:
            return None
        if self.primary_backend == BACKEND_BROWSER:
            return BACKEND_PROXY
        return BACKEND_BROWSER


def load_settings() -> HarvestSettings:
    """Settings from the environment; ``HARVEST_SELECTORS_FILE`` is used when no inline JSON is set."""
    path = os.getenv("HARVEST_SELECTORS_FILE", "").strip()
    if path and not os.getenv("HARVEST_SELECTORS_JSON", "").strip():
        selectors = SelectorSet.model_validate_json(Path(path).read_text(encoding="utf-8"))
        logger.info("Loaded selector overrides from %s", path)
        return HarvestSettings(selectors=selectors)
    return HarvestSettings()


@lru_cache()
def get_settings() -> HarvestSettings:
    return load_settings()
