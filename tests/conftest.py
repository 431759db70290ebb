import os
import sys

import pytest
from sqlalchemy import create_engine

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from harvester.config import HarvestSettings  # noqa: E402


@pytest.fixture()
def sqlite_engine():
    return create_engine("sqlite+pysqlite:///:memory:", future=True)


@pytest.fixture()
def settings():
    return HarvestSettings(
        source_url="https://x/discover",
        store_url="https://sheet.test/rows",
        bio_poll_attempts=3,
        bio_poll_delay_s=1.5,
        politeness_delay_s=1.0,
    )


@pytest.fixture()
def sleeps():
    """Records requested sleeps instead of blocking."""
    return []
