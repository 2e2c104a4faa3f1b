# listing_pipeline/api/routes.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
import requests
from .. import schemas
from ..db import get_db
from ..continuation import StartOutcome
from ..pipeline import Pipeline, get_pipeline
from ..provider import ProviderError
from ..utils import logger

router = APIRouter()

@router.get("/health")
def health():
    return {"status": "ok"}


def _require_provider(pipeline: Pipeline):
    if not pipeline.provider_configured:
        raise HTTPException(status_code=400, detail="APIFY_TOKEN not configured")


@router.get("/scraper/status")
def scraper_status(db: Session = Depends(get_db), pipeline: Pipeline = Depends(get_pipeline)):
    return pipeline.status(db)


@router.get("/scraper/runs", response_model=List[schemas.RunRecord])
def scraper_runs(pipeline: Pipeline = Depends(get_pipeline)):
    return pipeline.run_log.list()


@router.post("/scraper/run")
def run_maintenance(payload: Optional[schemas.RunRequest] = None, pipeline: Pipeline = Depends(get_pipeline)):
    _require_provider(pipeline)
    if pipeline.orchestrator.running:
        raise HTTPException(status_code=409, detail="Already running")
    zones = payload.zones if payload and payload.zones else pipeline.daily_zones
    pipeline.start_maintenance(zones)
    return {"message": "Maintenance scrape started", "zones": [z.label() for z in zones]}


@router.post("/scraper/bigrun")
def run_full_catalog(pipeline: Pipeline = Depends(get_pipeline)):
    _require_provider(pipeline)
    if pipeline.orchestrator.running and not pipeline.loop.active:
        raise HTTPException(status_code=409, detail="Already running")
    outcome = pipeline.loop.start()
    if outcome is StartOutcome.ALREADY_ACTIVE:
        return {"status": outcome.value, "loop": pipeline.loop.snapshot()}
    return {
        "status": outcome.value,
        "zones": len(pipeline.catalog),
        "locations": [z.label() for z in pipeline.catalog],
    }


@router.post("/scraper/stop")
def stop_loop(pipeline: Pipeline = Depends(get_pipeline)):
    previous = pipeline.loop.stop()
    return {"message": "Auto-loop stopped", "previous_state": previous.value, "running": pipeline.orchestrator.running}


@router.post("/scraper/import/{dataset_id}", response_model=schemas.ImportResult)
def import_dataset(dataset_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    _require_provider(pipeline)
    try:
        return pipeline.import_dataset(dataset_id)
    except (ProviderError, requests.RequestException) as e:
        logger.exception("Import of %s failed: %s", dataset_id, e)
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/scraper/cleanup")
def cleanup(pipeline: Pipeline = Depends(get_pipeline)):
    return pipeline.cleanup()
