"""
Connector for the Code Assist ``v1internal`` generation API.

The connector performs the outbound half of a chat completion: it posts a
translated :class:`CodeAssistRequest` and relays the backend answer, either as
a single :class:`GenerateContentResponse` or as a stream of OpenAI-format SSE
events.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

import httpx
from pydantic import ValidationError

from gemini_proxy.constants import CODE_ASSIST_ENDPOINT, CODE_ASSIST_HEADERS
from gemini_proxy.core.common.exceptions import BackendConnectionError, BackendError
from gemini_proxy.gemini_converters import (
    EndpointSelector,
    StreamSignal,
    decode_sse_frame,
    encode_sse_event,
    iter_sse_lines,
    parse_generation_response,
    to_chat_chunks,
)
from gemini_proxy.gemini_models import CodeAssistRequest, GenerateContentResponse

logger = logging.getLogger(__name__)

BACKEND_NAME = "code-assist"


def code_assist_headers(access_token: str, accept: str | None = None) -> dict[str, str]:
    """Headers sent on every Code Assist call."""
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
        **CODE_ASSIST_HEADERS,
    }
    if accept:
        headers["Accept"] = accept
    return headers


class CodeAssistConnector:
    """Outbound client for ``generateContent`` / ``streamGenerateContent``."""

    backend_type: str = BACKEND_NAME

    def __init__(
        self, client: httpx.AsyncClient, base_url: str = CODE_ASSIST_ENDPOINT
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")

    def _build_request(
        self,
        access_token: str,
        endpoint: EndpointSelector,
        envelope: CodeAssistRequest,
    ) -> httpx.Request:
        url = endpoint.url(self.base_url)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"Code Assist call: {endpoint.action} model={envelope.model} "
                f"project={envelope.project}"
            )
        return self.client.build_request(
            "POST",
            url,
            json=envelope.to_wire(),
            headers=code_assist_headers(access_token, endpoint.accept),
        )

    async def generate(
        self,
        access_token: str,
        endpoint: EndpointSelector,
        envelope: CodeAssistRequest,
    ) -> GenerateContentResponse:
        """Perform a unary generation call.

        Raises:
            BackendConnectionError: if the backend cannot be reached.
            BackendError: on a non-2xx status or an unparseable body.
        """
        request = self._build_request(access_token, endpoint, envelope)
        try:
            response = await self.client.send(request)
        except httpx.RequestError as e:
            if logger.isEnabledFor(logging.ERROR):
                logger.error("Request error connecting to Code Assist: %s", e, exc_info=True)
            raise BackendConnectionError(
                message=f"Could not connect to Code Assist ({e})"
            ) from e

        if response.status_code >= 400:
            raise self._status_error(response.status_code, response.text)

        try:
            return parse_generation_response(response.json())
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Unparseable Code Assist response: {e}")
            raise BackendError(
                message="Failed to parse Code Assist response",
                backend_name=self.backend_type,
                details={"backend_response": response.text},
            ) from e

    async def open_stream(
        self,
        access_token: str,
        endpoint: EndpointSelector,
        envelope: CodeAssistRequest,
    ) -> httpx.Response:
        """Open a streaming generation call and check its status.

        The returned response is open; the caller owns it and must close it
        (``relay_stream`` does so when its generator finishes).
        """
        request = self._build_request(access_token, endpoint, envelope)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.RequestError as e:
            if logger.isEnabledFor(logging.ERROR):
                logger.error("Request error connecting to Code Assist: %s", e, exc_info=True)
            raise BackendConnectionError(
                message=f"Could not connect to Code Assist ({e})"
            ) from e

        if response.status_code >= 400:
            try:
                body_bytes = await response.aread()
            finally:
                await response.aclose()
            raise self._status_error(
                response.status_code, body_bytes.decode("utf-8", errors="replace")
            )
        return response

    async def relay_stream(
        self,
        response: httpx.Response,
        model: str,
        *,
        completion_id: str,
        created: int,
    ) -> AsyncIterator[str]:
        """Translate an open backend event stream into OpenAI SSE events.

        Undecodable frames are dropped. ``[DONE]`` ends the relay without being
        forwarded. A transport failure produces one terminal error event. The
        backend response is closed however the generator exits, including when
        the inbound client disconnects.
        """
        try:
            async for line in iter_sse_lines(response.aiter_bytes()):
                frame = decode_sse_frame(line)
                if frame is None:
                    continue
                if frame is StreamSignal.DONE:
                    break
                for chunk in to_chat_chunks(
                    frame, model, completion_id=completion_id, created=created
                ):
                    yield encode_sse_event(chunk.model_dump())
        except httpx.TransportError as e:
            logger.error(f"Code Assist stream interrupted: {e}")
            error = BackendConnectionError(
                message=f"Stream error: {e}",
                details={"error": str(e)},
            )
            yield encode_sse_event(error.to_dict())
        finally:
            await response.aclose()

    def _status_error(self, status_code: int, body_text: str) -> BackendError:
        if logger.isEnabledFor(logging.ERROR):
            logger.error(
                "HTTP error from Code Assist: %s - %s", status_code, body_text
            )
        return BackendError(
            message=f"Code Assist API error: {status_code}",
            backend_name=self.backend_type,
            details={"status_code": status_code, "backend_response": body_text},
        )
