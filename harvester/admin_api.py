import logging
from functools import lru_cache

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse

from . import __version__
from .config import get_settings
from .db import get_engine
from .errors import RunInProgressError
from .observability import recent_runs
from .pipeline import run_from_settings
from .registry import RunRegistry

logger = logging.getLogger("campaign-harvester")

app = FastAPI(title="Campaign Harvester", version=__version__)


@lru_cache()
def get_registry() -> RunRegistry:
    return RunRegistry(max_runs=get_settings().registry_size)


@lru_cache()
def get_ledger_engine():
    return get_engine()


@app.get("/", response_class=PlainTextResponse)
def liveness():
    return "Harvester is up and responding to GET /"


@app.get("/health")
def health():
    return {"ok": True, "version": __version__}


@app.post("/run")
def run():
    logger.info("Received /run request")
    try:
        result = run_from_settings(
            get_settings(),
            registry=get_registry(),
            ledger_engine=get_ledger_engine(),
        )
    except RunInProgressError as exc:
        return JSONResponse(
            status_code=409,
            content={"error": "Run already in progress", "details": str(exc)},
        )
    except Exception as exc:
        logger.exception("Harvest run failed")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal script error", "details": str(exc)},
        )
    return result.to_dict()


@app.get("/runs")
def runs(limit: int = 20):
    out = {"ok": True, "runs": get_registry().list_ids()}
    engine = get_ledger_engine()
    if engine is not None:
        out["ledger"] = recent_runs(engine, limit=limit)
    return out


@app.get("/runs/latest")
def latest_run():
    result = get_registry().latest()
    if result is None:
        raise HTTPException(status_code=404, detail="No runs recorded yet")
    return result.to_dict()


@app.get("/runs/{run_id}")
def run_by_id(run_id: str):
    result = get_registry().get(run_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Unknown run {run_id}")
    return result.to_dict()
