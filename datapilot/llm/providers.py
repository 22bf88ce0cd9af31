from __future__ import annotations

from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from datapilot.core.errors import ConfigurationError
from datapilot.core.settings import Settings, get_settings
from datapilot.llm.types import LlmCallResult, LlmPrompt


class LlmProviderError(Exception):
    pass


def _to_messages(prompt: LlmPrompt) -> list[BaseMessage]:
    messages: list[BaseMessage] = [SystemMessage(content=prompt.system)]
    for role, content in prompt.history:
        if role == "assistant":
            messages.append(AIMessage(content=content))
        else:
            messages.append(HumanMessage(content=content))
    messages.append(HumanMessage(content=prompt.user))
    return messages


def _message_text(output: Any) -> str:
    content = getattr(output, "content", output)
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
            elif isinstance(block, str):
                parts.append(block)
        return "".join(parts)
    return str(content)


def _usage(output: Any, prompt: LlmPrompt, text: str) -> tuple[int, int]:
    usage = getattr(output, "usage_metadata", None) or {}
    prompt_tokens = usage.get("input_tokens")
    completion_tokens = usage.get("output_tokens")
    if prompt_tokens is None:
        history_text = " ".join(content for _, content in prompt.history)
        prompt_tokens = len((prompt.system + "\n" + history_text + "\n" + prompt.user).split())
    if completion_tokens is None:
        completion_tokens = len(text.split())
    return int(prompt_tokens), int(completion_tokens)


class BaseProvider:
    provider_name = "base"

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def _build_chat(self, *, model: str, max_tokens: int) -> Any:
        raise NotImplementedError

    def call(self, model: str, prompt: LlmPrompt) -> LlmCallResult:
        chat = self._build_chat(model=model, max_tokens=prompt.max_tokens)
        try:
            output = chat.invoke(_to_messages(prompt))
        except Exception as exc:
            raise LlmProviderError(f"{self.provider_name} completion failed: {exc}") from exc

        text = _message_text(output)
        prompt_tokens, completion_tokens = _usage(output, prompt, text)
        return LlmCallResult(
            text=text,
            model=model,
            provider=self.provider_name,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )


class OpenAIProvider(BaseProvider):
    provider_name = "openai"

    def __init__(self, settings: Settings | None = None) -> None:
        super().__init__(settings)
        if not self.settings.llm_openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is required when LLM_PROVIDER=openai")
        from langchain_openai import ChatOpenAI

        self._chat_class = ChatOpenAI

    def _build_chat(self, *, model: str, max_tokens: int) -> Any:
        return self._chat_class(
            model=model,
            api_key=self.settings.llm_openai_api_key,
            temperature=self.settings.llm_temperature,
            max_tokens=max_tokens,
        )


class AnthropicProvider(BaseProvider):
    provider_name = "anthropic"

    def __init__(self, settings: Settings | None = None) -> None:
        super().__init__(settings)
        if not self.settings.llm_anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is required when LLM_PROVIDER=anthropic")
        from langchain_anthropic import ChatAnthropic

        self._chat_class = ChatAnthropic

    def _build_chat(self, *, model: str, max_tokens: int) -> Any:
        return self._chat_class(
            model=model,
            api_key=self.settings.llm_anthropic_api_key,
            temperature=self.settings.llm_temperature,
            max_tokens=max_tokens,
        )


def provider_from_settings(settings: Settings | None = None) -> BaseProvider:
    settings = settings or get_settings()
    provider = settings.llm_provider.lower()
    if provider == "openai":
        return OpenAIProvider(settings)
    if provider == "anthropic":
        return AnthropicProvider(settings)
    raise ConfigurationError(f"Unsupported LLM provider: {settings.llm_provider}")
