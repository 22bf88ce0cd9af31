from __future__ import annotations

from datapilot.core.logging import get_logger
from datapilot.core.settings import Settings, get_settings
from datapilot.llm.providers import BaseProvider, provider_from_settings
from datapilot.llm.types import LlmCallResult, LlmPrompt

logger = get_logger(__name__)


class ModelRouter:
    """Production text-completion oracle: one provider, model chosen per task."""

    def __init__(self, settings: Settings | None = None, provider: BaseProvider | None = None) -> None:
        self.settings = settings or get_settings()
        self.provider = provider or provider_from_settings(self.settings)

    def model_for(self, task: str) -> str:
        if task == "generate_narrative":
            return self.settings.llm_expensive_model
        if task == "default":
            return self.settings.llm_default_model
        return self.settings.llm_cheap_model

    def complete(self, *, task: str, prompt: LlmPrompt) -> LlmCallResult:
        model = self.model_for(task)
        result = self.provider.call(model=model, prompt=prompt)
        logger.debug(
            "LLM %s/%s for %s: prompt=%s completion=%s",
            result.provider,
            result.model,
            task,
            result.prompt_tokens,
            result.completion_tokens,
        )
        return result
