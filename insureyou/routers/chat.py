"""POST /api/chat endpoint running the retrieval-and-response pipeline.

The router owns request parsing so that a missing or malformed body gets a
plain ``400 {"error": ...}`` instead of FastAPI's validation shape.  The
deployment's generation mode decides between a single JSON payload and a
server-sent UI message stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import ValidationError

from insureyou.dependencies import get_orchestrator
from insureyou.errors import RequestValidationFailed
from insureyou.logging_config import bind_request_context
from insureyou.schemas.chat import ChatMessage, ChatRequest
from insureyou.services.orchestrator import ChatOrchestrator, PipelineState
from insureyou.services.streaming import DONE_FRAME, STREAM_HEADERS, StreamWriter, encode_sse

logger = structlog.get_logger()

router = APIRouter(tags=["chat"])


def parse_chat_request(body: Any) -> ChatRequest:
    """Validate the decoded JSON body.

    Raises:
        RequestValidationFailed: If ``messages`` is missing, not a list, empty,
            or contains entries that are not chat messages.
    """
    messages = body.get("messages") if isinstance(body, dict) else None
    if not isinstance(messages, list) or not messages:
        raise RequestValidationFailed("Missing messages")
    try:
        return ChatRequest.model_validate({"messages": messages})
    except ValidationError as exc:
        raise RequestValidationFailed(f"Invalid messages: {exc.error_count()} error(s)") from exc


async def _event_stream(
    request: Request,
    orchestrator: ChatOrchestrator,
    messages: list[ChatMessage],
) -> AsyncIterator[str]:
    """Frame orchestrator events as SSE, stopping early if the client leaves."""
    writer = StreamWriter()
    events = orchestrator.stream(messages, writer)
    try:
        async for event in events:
            if await request.is_disconnected():
                logger.info("client_disconnected")
                writer.close()
                break
            yield encode_sse(event)
        else:
            yield DONE_FRAME
    finally:
        await events.aclose()


@router.post("/api/chat")
@router.post("/chat", include_in_schema=False)
async def chat(
    request: Request,
    orchestrator: Annotated[ChatOrchestrator, Depends(get_orchestrator)],
) -> Response:
    """Answer the latest user message, grounded in retrieved policy documents.

    Status codes: 400 for a missing or malformed body, 500 (sync mode only)
    when the pipeline hit an unexpected fault, 200 otherwise, including
    moderation denials and degraded answers.
    """
    bind_request_context(path=request.url.path, mode=orchestrator.mode)

    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

    try:
        chat_request = parse_chat_request(body)
    except RequestValidationFailed as exc:
        logger.info("chat_request_rejected", reason=str(exc))
        return JSONResponse(status_code=400, content={"error": str(exc)})

    if orchestrator.mode == "stream":
        return StreamingResponse(
            _event_stream(request, orchestrator, chat_request.messages),
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )

    result = await orchestrator.respond(chat_request.messages)
    status_code = 500 if result.state is PipelineState.INTERNAL_ERROR else 200
    logger.info(
        "chat_completed",
        state=result.state.value,
        matches=len(result.payload.matches),
        used_web_search=result.payload.used_web_search,
    )
    return JSONResponse(status_code=status_code, content=result.payload.to_body())
