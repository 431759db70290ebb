import argparse
import json
import logging
import os
import sys

from .config import load_settings
from .db import get_engine
from .logging_setup import setup_logging

logger = logging.getLogger("campaign-harvester")


def cmd_harvest(dry_run: bool) -> int:
    from .pipeline import run_from_settings

    settings = load_settings()
    if dry_run:
        from .list_fetcher import fetch_with_fallback
        from .render import build_backend

        primary = build_backend(settings.primary_backend, settings)
        fallback_name = settings.fallback_backend
        fallback = build_backend(fallback_name, settings) if fallback_name else None
        records = fetch_with_fallback(
            primary, fallback, settings.source_url, settings.selectors, settings.list_timeout_s
        )
        logger.info("Dry-run: fetched %s listings; skipping dedupe/enrich/upload", len(records))
        print(json.dumps([r.to_dict() for r in records], indent=2))
        return 0

    result = run_from_settings(settings, ledger_engine=get_engine())
    print(json.dumps(result.to_dict(), indent=2))
    return 1 if result.error else 0


def cmd_serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("harvester.admin_api:app", host=host, port=port)
    return 0


def cmd_runs(limit: int) -> int:
    from .observability import recent_runs

    engine = get_engine()
    if engine is None:
        logger.error("DATABASE_URL is not set; no run ledger to read")
        return 1
    print(json.dumps(recent_runs(engine, limit=limit), indent=2, default=str))
    return 0


def parse_args(argv=None):
    ap = argparse.ArgumentParser(prog="harvester")
    ap.add_argument("command", choices=["harvest", "serve", "runs"])
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Only fetch and print listings; no sheet reads or writes",
    )
    ap.add_argument("--host", type=str, default=os.getenv("HOST", "0.0.0.0"))
    ap.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")))
    ap.add_argument("--limit", type=int, default=20, help="Rows to show for 'runs'")
    return ap.parse_args(argv)


def main(argv=None) -> int:
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    args = parse_args(argv)

    if args.command == "harvest":
        return cmd_harvest(dry_run=args.dry_run)
    if args.command == "serve":
        return cmd_serve(args.host, args.port)
    return cmd_runs(args.limit)


if __name__ == "__main__":
    sys.exit(main())
