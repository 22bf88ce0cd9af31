from __future__ import annotations

from functools import lru_cache

from datapilot.agents.orchestrator import Orchestrator, create_orchestrator
from datapilot.core.settings import get_settings
from datapilot.schemas.semantic import SemanticMetadata
from datapilot.services.semantic_service import load_semantic_metadata
from datapilot.services.sql.executor import SqliteQueryExecutor


@lru_cache
def get_orchestrator() -> Orchestrator:
    return create_orchestrator(get_settings())


@lru_cache
def get_semantic_metadata() -> SemanticMetadata:
    return load_semantic_metadata(get_settings().semantic_path)


@lru_cache
def get_query_executor() -> SqliteQueryExecutor:
    settings = get_settings()
    return SqliteQueryExecutor(
        settings.warehouse_db_path,
        timeout_seconds=settings.query_timeout_seconds,
        max_rows=settings.query_max_rows,
    )
