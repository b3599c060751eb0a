"""
Converter functions between the OpenAI chat-completions format and the
Code Assist generation format.

All functions here are pure: they keep no state between requests and never
perform I/O. The connector and the chat controller compose them.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import ValidationError

from gemini_proxy.constants import (
    CODE_ASSIST_API_VERSION,
    SKIP_THOUGHT_SIGNATURE,
    SSE_DATA_PREFIX,
    SSE_DONE_MARKER,
)
from gemini_proxy.core.common.exceptions import StreamDecodeError
from gemini_proxy.gemini_models import (
    CodeAssistRequest,
    Content,
    FunctionCall,
    FunctionCallPart,
    FunctionDeclaration,
    FunctionResponsePart,
    GenerateContentRequest,
    GenerateContentResponse,
    GenerationConfig,
    Part,
    TextPart,
    Tool,
    UnknownPart,
)
from gemini_proxy.models import (
    ChatCompletionChoice,
    ChatCompletionChoiceMessage,
    ChatCompletionChunk,
    ChatCompletionChunkChoice,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    ChoiceDelta,
    CompletionUsage,
    ToolCall,
    ToolDefinition,
)
from gemini_proxy.models import FunctionCall as OpenAIFunctionCall

logger = logging.getLogger(__name__)

# OpenAI role -> Code Assist role. ``system`` is deliberately absent: system
# messages are not forwarded to the backend.
ROLE_MAP: dict[str, str] = {
    "user": "user",
    "assistant": "model",
    "tool": "function",
}
DEFAULT_FINISH_REASON = "stop"


class StreamSignal(Enum):
    """Control markers produced while decoding a backend event stream."""

    DONE = "done"


@dataclass(frozen=True)
class EndpointSelector:
    """Which Code Assist action to invoke for a translated request."""

    action: str
    streaming: bool

    @property
    def query(self) -> str | None:
        return "alt=sse" if self.streaming else None

    @property
    def accept(self) -> str:
        return "text/event-stream" if self.streaming else "application/json"

    def url(self, base_url: str) -> str:
        url = f"{base_url.rstrip('/')}/{CODE_ASSIST_API_VERSION}:{self.action}"
        if self.query:
            url += f"?{self.query}"
        return url


def select_endpoint(streaming: bool) -> EndpointSelector:
    action = "streamGenerateContent" if streaming else "generateContent"
    return EndpointSelector(action=action, streaming=streaming)


# ---------------------------------------------------------------------------
# Request direction
# ---------------------------------------------------------------------------


def parse_tool_arguments(arguments: str | None) -> Any:
    """Parse an OpenAI tool-call argument string into structured data.

    Empty or malformed JSON collapses to ``None`` instead of failing the
    whole request.
    """
    if not arguments:
        return None
    try:
        return json.loads(arguments)
    except (json.JSONDecodeError, TypeError):
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Tool call arguments are not valid JSON: {arguments!r}")
        return None


def tool_call_to_part(tool_call: ToolCall) -> FunctionCallPart:
    return FunctionCallPart(
        function_call=FunctionCall(
            name=tool_call.function.name,
            args=parse_tool_arguments(tool_call.function.arguments),
        ),
        thought_signature=SKIP_THOUGHT_SIGNATURE,
    )


def message_to_content(message: ChatMessage) -> Content | None:
    """Convert one OpenAI message to a Code Assist content entry.

    Returns ``None`` for system messages, which are dropped.
    """
    if message.role == "system":
        return None

    role = ROLE_MAP.get(message.role, "user")
    parts: list[Part] = []

    text = message.text()
    if text:
        parts.append(TextPart(text=text))

    for tool_call in message.tool_calls or []:
        parts.append(tool_call_to_part(tool_call))

    return Content(role=role, parts=parts)


def openai_to_code_assist_contents(messages: list[ChatMessage]) -> list[Content]:
    """Convert OpenAI messages to Code Assist contents, preserving order."""
    contents: list[Content] = []
    for message in messages:
        content = message_to_content(message)
        if content is not None:
            contents.append(content)
    return contents


def openai_tools_to_code_assist(tools: list[ToolDefinition]) -> list[Tool]:
    """Group all tool definitions into a single function-declaration group."""
    declarations = [
        FunctionDeclaration(**tool.function.model_dump(exclude_none=True))
        for tool in tools
    ]
    return [Tool(function_declarations=declarations)]


def build_generation_config(request: ChatCompletionRequest) -> GenerationConfig:
    values = {
        "temperature": request.temperature,
        "max_output_tokens": request.max_tokens,
    }
    return GenerationConfig(**{k: v for k, v in values.items() if v is not None})


def to_generation_request(
    request: ChatCompletionRequest, project_id: str
) -> tuple[EndpointSelector, CodeAssistRequest, bool]:
    """Translate an OpenAI chat request into a Code Assist generation call.

    Returns:
        The endpoint to call, the request envelope and whether the call streams.
    """
    streaming = bool(request.stream)

    inner_fields: dict[str, Any] = {
        "contents": openai_to_code_assist_contents(request.messages),
        "generation_config": build_generation_config(request),
    }
    if request.tools is not None:
        inner_fields["tools"] = openai_tools_to_code_assist(request.tools)

    envelope = CodeAssistRequest(
        project=project_id,
        model=request.model,
        request=GenerateContentRequest(**inner_fields),
    )
    return select_endpoint(streaming), envelope, streaming


# ---------------------------------------------------------------------------
# Response direction
# ---------------------------------------------------------------------------


def generate_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


def generate_tool_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def _collect_parts(content: Content | None) -> tuple[str, list[ToolCall]]:
    text_segments: list[str] = []
    tool_calls: list[ToolCall] = []
    if content is None:
        return "", tool_calls

    for part in content.parts:
        match part:
            case TextPart(text=text):
                text_segments.append(text)
            case FunctionCallPart(function_call=call):
                tool_calls.append(
                    ToolCall(
                        id=generate_tool_call_id(),
                        function=OpenAIFunctionCall(
                            name=call.name, arguments=json.dumps(call.args)
                        ),
                    )
                )
            case FunctionResponsePart() | UnknownPart():
                continue
    return "".join(text_segments), tool_calls


def to_usage(response: GenerateContentResponse) -> CompletionUsage | None:
    usage = response.usage_metadata
    if usage is None:
        return None
    return CompletionUsage(
        prompt_tokens=usage.prompt_token_count or 0,
        completion_tokens=usage.candidates_token_count or 0,
        total_tokens=usage.total_token_count or 0,
    )


def to_chat_response(
    response: GenerateContentResponse,
    model: str,
    *,
    completion_id: str | None = None,
    created: int | None = None,
) -> ChatCompletionResponse:
    """Convert a Code Assist response into an OpenAI chat completion."""
    choices: list[ChatCompletionChoice] = []
    for position, candidate in enumerate(response.candidates or []):
        text, tool_calls = _collect_parts(candidate.content)
        choices.append(
            ChatCompletionChoice(
                index=candidate.index if candidate.index is not None else position,
                message=ChatCompletionChoiceMessage(
                    role="assistant",
                    content=text or None,
                    tool_calls=tool_calls or None,
                ),
                finish_reason=candidate.finish_reason or DEFAULT_FINISH_REASON,
            )
        )

    return ChatCompletionResponse(
        id=completion_id or generate_completion_id(),
        created=created if created is not None else int(time.time()),
        model=model,
        choices=choices,
        usage=to_usage(response),
    )


def to_chat_chunks(
    fragment: GenerateContentResponse,
    model: str,
    *,
    completion_id: str | None = None,
    created: int | None = None,
) -> list[ChatCompletionChunk]:
    """Convert one streamed fragment into zero or more OpenAI chunks.

    One chunk is produced per candidate carrying non-empty text; tool calls
    are not emitted incrementally.
    """
    response = to_chat_response(
        fragment, model, completion_id=completion_id, created=created
    )
    chunks: list[ChatCompletionChunk] = []
    for choice in response.choices:
        if not choice.message.content:
            continue
        chunks.append(
            ChatCompletionChunk(
                id=response.id,
                created=response.created,
                model=response.model,
                choices=[
                    ChatCompletionChunkChoice(
                        index=choice.index,
                        delta=ChoiceDelta(content=choice.message.content),
                        finish_reason=choice.finish_reason,
                    )
                ],
            )
        )
    return chunks


def unwrap_response_envelope(payload: Any) -> Any:
    """Return the inner response of a Code Assist ``{"response": ...}`` envelope."""
    if isinstance(payload, dict) and "response" in payload:
        return payload["response"]
    return payload


def parse_generation_response(payload: Any) -> GenerateContentResponse:
    """Validate an (optionally enveloped) backend payload.

    Raises:
        pydantic.ValidationError: if the payload is not a generation response.
    """
    return GenerateContentResponse.model_validate(unwrap_response_envelope(payload))


def parse_sse_data(data: str) -> GenerateContentResponse:
    """Parse the JSON payload of one stream frame.

    Raises:
        StreamDecodeError: if the payload is not JSON or not a generation response.
    """
    try:
        return parse_generation_response(json.loads(data))
    except (json.JSONDecodeError, ValidationError) as e:
        raise StreamDecodeError(details={"frame": data, "error": str(e)}) from e


def decode_sse_frame(
    line: str,
) -> GenerateContentResponse | StreamSignal | None:
    """Decode one ``data: <json>`` line of the backend event stream.

    Returns the decoded fragment, ``StreamSignal.DONE`` for the terminal
    sentinel, or ``None`` when the line carries nothing usable.
    """
    stripped = line.strip()
    if not stripped.startswith(SSE_DATA_PREFIX):
        return None

    data = stripped[len(SSE_DATA_PREFIX) :].strip()
    if data == SSE_DONE_MARKER:
        return StreamSignal.DONE
    if not data:
        return None

    try:
        return parse_sse_data(data)
    except StreamDecodeError as e:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Dropping undecodable stream frame: {e.details}")
        return None


async def iter_sse_lines(byte_chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Reassemble newline-delimited lines across arbitrary chunk boundaries."""
    buffer = b""
    async for chunk in byte_chunks:
        buffer += chunk
        while b"\n" in buffer:
            raw_line, buffer = buffer.split(b"\n", 1)
            yield raw_line.decode("utf-8", errors="replace").rstrip("\r")
    if buffer:
        yield buffer.decode("utf-8", errors="replace").rstrip("\r")


def encode_sse_event(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"
