"""
Pydantic models for the Code Assist ``v1internal`` request/response structures.

The Code Assist API wraps the public Gemini ``GenerateContentRequest`` in an
envelope carrying the project and model, and answers with a
``GenerateContentResponse`` that may itself be wrapped in a ``response`` field.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import ConfigDict, Discriminator, Field, Tag

from gemini_proxy.core.interfaces.model_bases import DomainModel


class FunctionCall(DomainModel):
    name: str
    args: Any = None


class FunctionResponse(DomainModel):
    name: str
    response: Any = None


class TextPart(DomainModel):
    """A plain text part."""

    text: str
    thought: bool | None = None


class FunctionCallPart(DomainModel):
    """A function invocation requested by (or replayed to) the model."""

    function_call: FunctionCall = Field(alias="functionCall")
    thought_signature: str | None = Field(None, alias="thoughtSignature")


class FunctionResponsePart(DomainModel):
    """The result of a function invocation."""

    function_response: FunctionResponse = Field(alias="functionResponse")


class UnknownPart(DomainModel):
    """Any part kind the proxy does not translate (inline data, code, ...)."""

    model_config = ConfigDict(extra="allow")


def _part_kind(value: Any) -> str:
    if isinstance(value, dict):
        if "functionCall" in value or "function_call" in value:
            return "function_call"
        if "functionResponse" in value or "function_response" in value:
            return "function_response"
        if "text" in value:
            return "text"
        return "unknown"
    if isinstance(value, FunctionCallPart):
        return "function_call"
    if isinstance(value, FunctionResponsePart):
        return "function_response"
    if isinstance(value, TextPart):
        return "text"
    return "unknown"


Part = Annotated[
    Annotated[TextPart, Tag("text")]
    | Annotated[FunctionCallPart, Tag("function_call")]
    | Annotated[FunctionResponsePart, Tag("function_response")]
    | Annotated[UnknownPart, Tag("unknown")],
    Discriminator(_part_kind),
]
"""Tagged union of part kinds; exactly one payload per part."""


class Content(DomainModel):
    """Content of a conversation turn."""

    role: str | None = None  # "user", "model", or "function"
    parts: list[Part] = Field(default_factory=list)


class GenerationConfig(DomainModel):
    temperature: float | None = None
    max_output_tokens: int | None = Field(None, alias="maxOutputTokens")


class FunctionDeclaration(DomainModel):
    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None


class Tool(DomainModel):
    function_declarations: list[FunctionDeclaration] = Field(
        alias="functionDeclarations"
    )


class GenerateContentRequest(DomainModel):
    """The inner Gemini request carried by a Code Assist call."""

    contents: list[Content]
    generation_config: GenerationConfig | None = Field(None, alias="generationConfig")
    tools: list[Tool] | None = None


class CodeAssistRequest(DomainModel):
    """Envelope posted to ``v1internal:generateContent`` / ``streamGenerateContent``."""

    project: str
    model: str
    request: GenerateContentRequest

    def to_wire(self) -> dict[str, Any]:
        """Serialize with API field names, keeping only explicitly set fields."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class Candidate(DomainModel):
    """A generated candidate response."""

    content: Content | None = None
    finish_reason: str | None = Field(None, alias="finishReason")
    index: int | None = None


class UsageMetadata(DomainModel):
    prompt_token_count: int | None = Field(None, alias="promptTokenCount")
    candidates_token_count: int | None = Field(None, alias="candidatesTokenCount")
    total_token_count: int | None = Field(None, alias="totalTokenCount")


class GenerateContentResponse(DomainModel):
    """Response (or one streamed fragment) from the generation endpoint."""

    candidates: list[Candidate] | None = None
    usage_metadata: UsageMetadata | None = Field(None, alias="usageMetadata")
