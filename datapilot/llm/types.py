from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class LlmPrompt:
    system: str
    user: str
    # Prior conversation as (role, content) pairs, oldest first.
    history: tuple[tuple[str, str], ...] = ()
    max_tokens: int = 1024


@dataclass
class LlmCallResult:
    text: str
    model: str
    provider: str
    prompt_tokens: int
    completion_tokens: int


class TextCompletionOracle(Protocol):
    def complete(self, *, task: str, prompt: LlmPrompt) -> LlmCallResult: ...
