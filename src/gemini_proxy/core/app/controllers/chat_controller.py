"""
Chat Controller

Handles ``/v1/chat/completions``: authenticate, resolve the project, translate,
call Code Assist and relay the result.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.responses import Response

from gemini_proxy.connectors.code_assist import CodeAssistConnector
from gemini_proxy.core.auth.project_resolver import ProjectResolver
from gemini_proxy.core.auth.token_manager import TokenManager
from gemini_proxy.gemini_converters import (
    generate_completion_id,
    to_chat_response,
    to_generation_request,
)
from gemini_proxy.models import ChatCompletionRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


class ChatController:
    """Runs one chat completion through the Code Assist backend."""

    def __init__(
        self,
        token_manager: TokenManager,
        project_resolver: ProjectResolver,
        connector: CodeAssistConnector,
    ) -> None:
        self._token_manager = token_manager
        self._project_resolver = project_resolver
        self._connector = connector

    async def handle_chat_completion(self, request: ChatCompletionRequest) -> Response:
        """Handle a chat completion request.

        Auth, resolution and backend failures propagate as ``ProxyError``
        subclasses and are rendered by the exception handlers.
        """
        credential = await self._token_manager.ensure_valid_token()
        project_id = await self._project_resolver.ensure_project(
            credential.access_token
        )

        endpoint, envelope, streaming = to_generation_request(request, project_id)
        if logger.isEnabledFor(logging.INFO):
            logger.info(
                f"Chat completion model={request.model} messages={len(request.messages)} "
                f"stream={streaming} project={project_id}"
            )

        if streaming:
            response = await self._connector.open_stream(
                credential.access_token, endpoint, envelope
            )
            return StreamingResponse(
                self._connector.relay_stream(
                    response,
                    request.model,
                    completion_id=generate_completion_id(),
                    created=int(time.time()),
                ),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            )

        result = await self._connector.generate(
            credential.access_token, endpoint, envelope
        )
        completion = to_chat_response(result, request.model)
        return JSONResponse(content=completion.model_dump())


def get_chat_controller(request: Request) -> ChatController:
    """Build a controller from the services placed on ``app.state`` at startup."""
    state: Any = request.app.state
    return ChatController(
        token_manager=state.token_manager,
        project_resolver=state.project_resolver,
        connector=state.connector,
    )


@router.post("/v1/chat/completions")
async def chat_completions(
    request_data: ChatCompletionRequest,
    controller: ChatController = Depends(get_chat_controller),
) -> Response:
    return await controller.handle_chat_completion(request_data)
