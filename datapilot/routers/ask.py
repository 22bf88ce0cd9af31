from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from datapilot.agents.orchestrator import Orchestrator
from datapilot.core.dependencies import get_orchestrator, get_query_executor, get_semantic_metadata
from datapilot.core.errors import PipelineError, http_status_for
from datapilot.core.logging import get_logger
from datapilot.models.graph_state import QueryExecutor
from datapilot.schemas.api import AskRequest, ErrorDetail
from datapilot.schemas.pipeline import OrchestratorResponse
from datapilot.schemas.semantic import SemanticMetadata

router = APIRouter(tags=["ask"])
logger = get_logger(__name__)


def error_detail(exc: PipelineError, request_id: str | None) -> dict:
    if exc.trace is not None:
        request_id = exc.trace.request_id
    return ErrorDetail(**exc.to_dict(), request_id=request_id).model_dump(exclude_none=True)


@router.post("/ask", response_model=OrchestratorResponse)
def ask(
    payload: AskRequest,
    request: Request,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    semantic_metadata: SemanticMetadata = Depends(get_semantic_metadata),
    query_executor: QueryExecutor = Depends(get_query_executor),
) -> OrchestratorResponse:
    http_request_id = getattr(request.state, "request_id", None)
    try:
        return orchestrator.process(
            payload.question,
            semantic_metadata,
            query_executor,
            session_context=payload.session_context(),
        )
    except PipelineError as exc:
        raise HTTPException(
            status_code=http_status_for(exc),
            detail=error_detail(exc, http_request_id),
        ) from exc
    except Exception as exc:
        logger.exception("Unhandled error during ask pipeline", extra={"request_id": http_request_id})
        raise HTTPException(status_code=500, detail="Internal error while processing question.") from exc
