from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from datapilot.schemas.intent import ConversationTurn, SessionContext


class AskRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)
    session_id: str | None = None
    turns: list[ConversationTurn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _turns_need_session(self) -> AskRequest:
        if not self.question.strip():
            raise ValueError("question must not be blank")
        if self.turns and not self.session_id:
            raise ValueError("turns require a session_id")
        return self

    def session_context(self) -> SessionContext | None:
        if not self.session_id:
            return None
        return SessionContext(session_id=self.session_id, turns=self.turns)


class ErrorDetail(BaseModel):
    code: str
    message: str
    stage: str
    request_id: str | None = None
    details: dict[str, Any] | None = None
    cause: str | None = None


class HealthResponse(BaseModel):
    status: str
    app: str
    env: str


class CacheClearedResponse(BaseModel):
    cleared: int
