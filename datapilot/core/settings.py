from __future__ import annotations

from functools import lru_cache
import json
from pathlib import Path
from typing import Annotated
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from datapilot.schemas.sql import WarehouseDialect

ENV_FILES = (".env", ".env.local")


def _normalize_origin(value: str) -> str:
    parts = urlsplit(value.strip())
    if not parts.scheme or not parts.netloc:
        return value.strip().rstrip("/").lower()
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=ENV_FILES, env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    app_name: str = "datapilot-api"
    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    llm_provider: str = Field(default="anthropic", alias="LLM_PROVIDER")
    llm_default_model: str = Field(default="claude-sonnet-4-20250514", alias="LLM_DEFAULT_MODEL")
    llm_cheap_model: str = Field(default="claude-sonnet-4-20250514", alias="LLM_CHEAP_MODEL")
    llm_expensive_model: str = Field(default="claude-sonnet-4-20250514", alias="LLM_EXPENSIVE_MODEL")
    llm_temperature: float = Field(default=0.0, alias="LLM_TEMPERATURE")

    llm_openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    llm_anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")

    warehouse_dialect: WarehouseDialect = Field(default="postgresql", alias="WAREHOUSE_DIALECT")
    max_sql_retries: int = Field(default=3, alias="MAX_SQL_RETRIES")
    max_data_retries: int = Field(default=2, alias="MAX_DATA_RETRIES")
    enable_cache: bool = Field(default=True, alias="ENABLE_CACHE")
    cache_ttl_ms: int = Field(default=5 * 60 * 1000, alias="CACHE_TTL_MS")
    cache_max_size: int = Field(default=100, alias="CACHE_MAX_SIZE")

    semantic_path: Path = Field(default=Path("data/semantic.json"), alias="SEMANTIC_PATH")
    warehouse_db_path: Path = Field(default=Path("data/warehouse.db"), alias="WAREHOUSE_DB_PATH")
    query_timeout_seconds: float = 5.0
    query_max_rows: int = 10_000

    cors_allow_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_origin_regex: str | None = Field(default=None, alias="CORS_ALLOW_ORIGIN_REGEX")

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _parse_cors_allow_origins(cls, value):
        if value is None:
            return value
        if isinstance(value, str):
            parsed = value.strip()
            if not parsed:
                return []
            if parsed.startswith("["):
                try:
                    loaded = json.loads(parsed)
                    if isinstance(loaded, list):
                        return [_normalize_origin(str(item)) for item in loaded if str(item).strip()]
                except json.JSONDecodeError:
                    pass
            return [_normalize_origin(item) for item in parsed.split(",") if item.strip()]
        return [_normalize_origin(str(item)) for item in value if str(item).strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
