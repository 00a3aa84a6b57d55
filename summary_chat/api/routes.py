from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy import text as sql_text
import json
import logging
from typing import AsyncIterator, Optional

from summary_chat.api.auth import authenticate
from summary_chat.db.models import Message, Thread
from summary_chat.errors import InputError, SummaryChatError
from summary_chat.memory.loader import UploadedFile
from summary_chat.models import (
    ErrorResponse,
    HealthResponse,
    MessageListResponse,
    MessageResponse,
    ThreadListResponse,
    ThreadResponse,
)
from summary_chat.workflow.chat_service import ChatService


# ============================================================
# LOGGER
# ============================================================

logger = logging.getLogger(__name__)

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


# ============================================================
# DEPENDENCIES
# ============================================================

def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


# ============================================================
# HELPERS
# ============================================================

def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _event_stream(deltas: AsyncIterator[str], thread_id: int) -> AsyncIterator[str]:
    """
    Server-Sent Events framing for a generation attempt.

    Persistence is owned by the generation driver, so stopping here
    (client gone) never loses the thread status or the reply.
    """

    try:

        async for delta in deltas:
            yield _sse({"type": "delta", "text": delta})

    except SummaryChatError as e:

        logger.warning(
            "stream_failed",
            extra={"thread_id": thread_id, "error": e.message, "error_type": type(e).__name__},
        )

        yield _sse({"type": "error", **e.to_dict()})

        return

    yield _sse({"type": "done", "thread_id": thread_id})


def _streaming_response(deltas: AsyncIterator[str], thread_id: int) -> StreamingResponse:

    return StreamingResponse(
        _event_stream(deltas, thread_id),
        media_type="text/event-stream",
        headers={
            "X-Thread-Id": str(thread_id),
            "Cache-Control": "no-cache",
        },
    )


def _thread_response(thread: Thread) -> ThreadResponse:

    return ThreadResponse(
        id=thread.id,
        title=thread.title,
        status=thread.status.value,
        created_at=thread.created_at,
        updated_at=thread.updated_at,
    )


def _message_response(message: Message) -> MessageResponse:

    return MessageResponse(
        id=message.id,
        thread_id=message.thread_id,
        sender_type=message.sender_type.value,
        content_type=message.content_type.value,
        content=message.content,
        file_name=message.file_name,
        file_size=message.file_size,
        link_url=message.link_url,
        has_full_content=message.has_full_content,
        summary_role=message.summary_role.value if message.summary_role else None,
        created_at=message.created_at,
    )


def _parse_thread_id(raw: Optional[str]) -> Optional[int]:

    if raw is None or not raw.strip():
        return None

    try:
        return int(raw)
    except ValueError:
        raise InputError("thread_id must be an integer")


# ============================================================
# HEALTH
# ============================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):

    database = "healthy"

    try:
        async with request.app.state.engine.connect() as conn:
            await conn.execute(sql_text("SELECT 1"))
    except Exception as e:
        logger.error("database_health_failed", extra={"error": str(e)})
        database = "unhealthy"

    analytics = request.app.state.analytics

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        database=database,
        analytics_enabled=bool(getattr(analytics, "enabled", False)),
    )


# ============================================================
# SUBMIT MESSAGE
# ============================================================

@router.post("/messages", responses={**_ERRORS, 413: {"model": ErrorResponse}})
async def submit_message(
    text: Optional[str] = Form(None),
    thread_id: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    user_id: str = Depends(authenticate),
    service: ChatService = Depends(get_chat_service),
):

    uploaded = None

    if file is not None and file.filename:

        uploaded = UploadedFile(
            data=await file.read(),
            media_type=file.content_type,
            file_name=file.filename,
        )

    submission = await service.submit(
        user_id=user_id,
        thread_id=_parse_thread_id(thread_id),
        text=text,
        file=uploaded,
    )

    return _streaming_response(submission.deltas, submission.thread_id)


# ============================================================
# RETRY
# ============================================================

@router.post("/threads/{thread_id}/retry", responses=_ERRORS)
async def retry_thread(
    thread_id: int,
    user_id: str = Depends(authenticate),
    service: ChatService = Depends(get_chat_service),
):

    deltas = await service.retry(user_id, thread_id)

    return _streaming_response(deltas, thread_id)


# ============================================================
# THREADS
# ============================================================

@router.get("/threads", response_model=ThreadListResponse, responses={401: {"model": ErrorResponse}})
async def list_threads(
    user_id: str = Depends(authenticate),
    service: ChatService = Depends(get_chat_service),
):

    threads = await service.list_threads(user_id)

    return ThreadListResponse(threads=[_thread_response(t) for t in threads])


@router.get("/threads/{thread_id}/messages", response_model=MessageListResponse, responses=_ERRORS)
async def list_thread_messages(
    thread_id: int,
    user_id: str = Depends(authenticate),
    service: ChatService = Depends(get_chat_service),
):

    messages = await service.list_messages(user_id, thread_id)

    return MessageListResponse(messages=[_message_response(m) for m in messages])


# ============================================================
# METRICS ENDPOINT
# ============================================================

@router.get("/metrics")
async def get_metrics(request: Request):

    return request.app.state.metrics.get_metrics()
