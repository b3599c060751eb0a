"""
Pydantic models for the OpenAI chat-completions wire format.

These cover the subset of the OpenAI schema the proxy accepts and emits:
requests with tool definitions, unary completions and streamed chunks.
"""

from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    model_serializer,
)


class MessageContentPartText(BaseModel):
    """Represents a text content part in a multimodal message."""

    type: str = "text"
    text: str


class FunctionCall(BaseModel):
    """Represents a function call within a tool call."""

    name: str
    arguments: str = ""


class ToolCall(BaseModel):
    """Represents a tool call in a chat message."""

    id: str
    type: str = "function"
    function: FunctionCall


class FunctionDefinition(BaseModel):
    """Represents a function definition for tool calling."""

    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None


class ToolDefinition(BaseModel):
    """Represents a tool definition in a chat completion request."""

    type: str = "function"
    function: FunctionDefinition


class ChatMessage(BaseModel):
    """
    Represents a single message in a chat conversation, conforming to OpenAI's structure.
    A message carries narrative content, tool invocations, or both.
    """

    role: str
    content: str | list[MessageContentPartText] | None = None
    name: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    def text(self) -> str | None:
        """Return the message content flattened to a single string."""
        if isinstance(self.content, list):
            return "".join(part.text for part in self.content)
        return self.content


class ChatCompletionRequest(BaseModel):
    """
    Represents a request for chat completions, mirroring OpenAI's API structure.
    Parameters the backend has no counterpart for are accepted and ignored.
    """

    model: str
    messages: list[ChatMessage]
    stream: bool | None = Field(
        False,
        description="If true, partial message deltas will be sent as server-sent events.",
    )
    temperature: float | None = Field(
        None,
        description="Controls randomness in the model's output.",
    )
    max_tokens: int | None = Field(
        None,
        ge=0,
        description="The maximum number of tokens to generate in the chat completion.",
    )
    tools: list[ToolDefinition] | None = None


class ChatCompletionChoiceMessage(BaseModel):
    """Represents the message content within a chat completion choice."""

    model_config = ConfigDict(extra="ignore")

    role: str = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] | None = None

    @model_serializer(mode="wrap")
    def _omit_absent_tool_calls(
        self, handler: SerializerFunctionWrapHandler
    ) -> dict[str, Any]:
        # content stays (null when empty); tool_calls only when present
        data = handler(self)
        if data.get("tool_calls") is None:
            data.pop("tool_calls", None)
        return data


class ChatCompletionChoice(BaseModel):
    """Represents a single choice in a chat completion response."""

    index: int
    message: ChatCompletionChoiceMessage
    finish_reason: str | None = None


class CompletionUsage(BaseModel):
    """Represents token usage statistics for a completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """
    Represents a standard chat completion response, conforming to OpenAI's structure.
    """

    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[ChatCompletionChoice]
    usage: CompletionUsage | None = None

    @model_serializer(mode="wrap")
    def _omit_absent_usage(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        if data.get("usage") is None:
            data.pop("usage", None)
        return data


class ChoiceDelta(BaseModel):
    content: str | None = None


class ChatCompletionChunkChoice(BaseModel):
    index: int
    delta: ChoiceDelta
    finish_reason: str | None = None


class ChatCompletionChunk(BaseModel):
    """A single ``chat.completion.chunk`` event of a streamed completion."""

    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: list[ChatCompletionChunkChoice]


class ModelCard(BaseModel):
    id: str
    object: Literal["model"] = "model"
    owned_by: str


class ModelList(BaseModel):
    object: Literal["list"] = "list"
    data: list[ModelCard]
