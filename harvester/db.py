import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

_DB_URL_ALIASES = (
    "DATABASE_URL",
    "DATABASE_PRIVATE_URL",
    "POSTGRES_URL",
    "POSTGRESQL_URL",
)


def _resolve_database_url() -> Optional[str]:
    for key in _DB_URL_ALIASES:
        value = os.getenv(key)
        if value:
            return value
    return None


def get_engine() -> Optional[Engine]:
    """Engine for the run ledger, or None when no database is configured."""
    db_url = _resolve_database_url()
    if not db_url:
        return None

    url = make_url(db_url)
    # Normalize to psycopg driver for SQLAlchemy (safe even if already present)
    if url.drivername == "postgresql":
        url = url.set(drivername="postgresql+psycopg")

    query = dict(url.query)
    require_ssl = os.getenv("REQUIRE_DB_SSL", "0").strip().lower() in {
        "1",
        "true",
        "yes",
        "on",
    }
    if not query.get("sslmode") and require_ssl and url.drivername.startswith("postgresql"):
        query["sslmode"] = "require"
        url = url.set(query=query)

    return create_engine(url, pool_pre_ping=True, future=True)
