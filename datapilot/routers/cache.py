from __future__ import annotations

from fastapi import APIRouter, Depends

from datapilot.agents.orchestrator import Orchestrator
from datapilot.core.dependencies import get_orchestrator
from datapilot.schemas.api import CacheClearedResponse
from datapilot.schemas.pipeline import CacheStats

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/stats", response_model=CacheStats)
def cache_stats(orchestrator: Orchestrator = Depends(get_orchestrator)) -> CacheStats:
    return orchestrator.cache_stats()


@router.delete("", response_model=CacheClearedResponse)
def clear_cache(orchestrator: Orchestrator = Depends(get_orchestrator)) -> CacheClearedResponse:
    cleared = orchestrator.cache.size
    orchestrator.clear_cache()
    return CacheClearedResponse(cleared=cleared)
