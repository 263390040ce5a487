from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .contracts import ChatTurn, CompletionRequest, CompletionResult, Role


class TurnBody(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CredentialBody(BaseModel):
    provider: str = Field(min_length=1)
    credential: str = Field(min_length=1, repr=False)

    @field_validator("credential")
    @classmethod
    def _validate_credential(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("credential must be non-empty.")
        if not v.isascii() or not v.isprintable():
            raise ValueError("credential must be printable ASCII.")
        return v


class CompletionBody(CredentialBody):
    model_config = ConfigDict(extra="forbid")

    turns: list[TurnBody] = Field(min_length=1)
    max_tokens: int | None = None
    temperature: float | None = None

    @field_validator("temperature")
    @classmethod
    def _validate_temperature(cls, v: float | None) -> float | None:
        if v is None:
            return None
        if not (0.0 <= v <= 2.0):
            raise ValueError("temperature must be between 0 and 2.")
        return v

    @field_validator("max_tokens")
    @classmethod
    def _validate_max_tokens(cls, v: int | None) -> int | None:
        if v is None:
            return None
        if v <= 0:
            raise ValueError("max_tokens must be > 0.")
        return v

    def to_request(self) -> CompletionRequest:
        return CompletionRequest(
            provider=self.provider,
            credential=self.credential,
            turns=tuple(ChatTurn(role=Role(t.role), content=t.content) for t in self.turns),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


class CredentialCheckBody(CredentialBody):
    pass


class MoodAnalysisBody(CredentialBody):
    text: str


class RecentMoodBody(BaseModel):
    mood_type: str
    content: str | None = None


class MoodChatBody(CredentialBody):
    message: str = Field(min_length=1)
    history: list[TurnBody] = Field(default_factory=list)
    recent_moods: list[RecentMoodBody] = Field(default_factory=list)

    def history_turns(self) -> tuple[ChatTurn, ...]:
        return tuple(ChatTurn(role=Role(t.role), content=t.content) for t in self.history)


class MoodEntryBody(BaseModel):
    date: str | None = None
    mood: str
    content: str | None = None


class MoodInsightBody(CredentialBody):
    entries: list[MoodEntryBody]
    period: Literal["week", "month", "year"] = "week"


class ResolveBody(BaseModel):
    url: str = Field(min_length=1)


class UsageBody(BaseModel):
    input_tokens: int
    output_tokens: int


class CompletionResponse(BaseModel):
    provider: str
    content: str
    usage: UsageBody | None = None


def make_completion_response(result: CompletionResult) -> CompletionResponse:
    usage = None
    if result.usage is not None:
        usage = UsageBody(input_tokens=result.usage.input_tokens, output_tokens=result.usage.output_tokens)
    return CompletionResponse(provider=result.provider.value, content=result.content, usage=usage)


class ErrorDetail(BaseModel):
    message: str
    type: str = "api_error"
    code: str | None = None
    upstream_status: int | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


def make_error_response(
    *,
    message: str,
    type: str = "api_error",
    code: str | None = None,
    upstream_status: int | None = None,
) -> dict[str, Any]:
    return ErrorResponse(
        error=ErrorDetail(message=message, type=type, code=code, upstream_status=upstream_status)
    ).model_dump()
