from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError

from datapilot.core.errors import ConfigurationError
from datapilot.schemas.semantic import SemanticMetadata


def load_semantic_metadata(path: Path | str) -> SemanticMetadata:
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Semantic metadata file not found: {path}") from exc

    try:
        metadata = SemanticMetadata.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid semantic metadata in {path}: {exc.error_count()} error(s)") from exc

    if not metadata.metrics:
        raise ConfigurationError(f"Semantic metadata in {path} defines no metrics")
    return metadata
