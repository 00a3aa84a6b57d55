# summary_chat/workflow/sizing.py
"""
Content sizing and summarization policy.

Decides how each extracted piece of content is stored:

  any kind, over the hard ceiling  → excerpt + marker, offloaded to the index
  pdf / link under the ceiling     → full text, condensed representation
  long text under the ceiling      → full text, condensed representation
  short text                       → ordinary message
"""

import logging
from dataclasses import dataclass
from typing import Optional

from summary_chat.config import (
    MAX_CONTENT_LENGTH,
    SUMMARY_THRESHOLD,
    TRUNCATION_HEADROOM,
    TRUNCATION_MARKER,
)
from summary_chat.db.models import (
    ContentKind,
    Message,
    OffloadStatus,
    SenderType,
    SummaryRole,
    Thread,
)
from summary_chat.memory.loader import ExtractedContent
from summary_chat.memory.store import ChunkMetadata

logger = logging.getLogger(__name__)


@dataclass
class StoragePlan:
    content: str
    has_full_content: bool
    summary_role: Optional[SummaryRole]
    offload: bool


def truncate_content(
    text: str,
    max_length: int = MAX_CONTENT_LENGTH,
) -> str:

    return text[:max_length - TRUNCATION_HEADROOM] + TRUNCATION_MARKER


def plan_storage(
    content: ExtractedContent,
    has_primary: bool,
    max_length: int = MAX_CONTENT_LENGTH,
    summary_threshold: int = SUMMARY_THRESHOLD,
) -> StoragePlan:

    length = len(content.text)

    if length > max_length:
        return StoragePlan(
            content=truncate_content(content.text, max_length),
            has_full_content=False,
            summary_role=SummaryRole.PRIMARY,
            offload=True,
        )

    condensed_role = SummaryRole.ADDITIONAL if has_primary else SummaryRole.PRIMARY

    if content.kind in (ContentKind.PDF, ContentKind.LINK):
        return StoragePlan(content.text, True, condensed_role, False)

    if length > summary_threshold:
        return StoragePlan(content.text, True, condensed_role, False)

    return StoragePlan(content.text, False, None, False)


class SizingPolicy:
    """
    Persists extracted content according to `plan_storage`.

    Index offload is best effort: the truncated row is always written,
    and the offload outcome is recorded on it for context assembly.
    """

    def __init__(
        self,
        store,
        index,
        analytics=None,
        max_length: int = MAX_CONTENT_LENGTH,
        summary_threshold: int = SUMMARY_THRESHOLD,
    ):
        self._store = store
        self._index = index
        self._analytics = analytics
        self._max_length = max_length
        self._summary_threshold = summary_threshold

    async def persist(
        self,
        thread: Thread,
        user_id: str,
        content: ExtractedContent,
    ) -> Message:

        has_primary = await self._store.has_primary_summary(thread.id)

        plan = plan_storage(
            content,
            has_primary,
            max_length=self._max_length,
            summary_threshold=self._summary_threshold,
        )

        message = await self._store.create_message(
            thread_id=thread.id,
            user_id=user_id,
            sender_type=SenderType.USER,
            content=plan.content,
            content_type=content.kind,
            file_name=content.file_name,
            file_size=content.file_size,
            link_url=content.link_url,
            has_full_content=plan.has_full_content,
            summary_role=plan.summary_role,
        )

        logger.info(
            "content_persisted",
            extra={
                "thread_id": thread.id,
                "message_id": message.id,
                "content_type": content.kind.value,
                "original_length": len(content.text),
                "stored_length": len(plan.content),
                "has_full_content": plan.has_full_content,
                "summary_role": plan.summary_role.value if plan.summary_role else None,
                "offload": plan.offload,
            },
        )

        if plan.offload:
            await self._offload(thread, user_id, message, content)

        return message

    async def _offload(
        self,
        thread: Thread,
        user_id: str,
        message: Message,
        content: ExtractedContent,
    ):

        result = await self._index.store(
            content.text,
            ChunkMetadata(
                thread_id=thread.id,
                message_id=message.id,
                content_type=content.kind.value,
                user_id=user_id,
            ),
        )

        status = OffloadStatus.STORED if result.ok else OffloadStatus.FAILED

        await self._store.update_offload_status(message.id, status)
        message.offload_status = status

        if self._analytics is None:
            return

        if result.ok:
            self._analytics.record(
                "vector_storage",
                user_id=user_id,
                thread_id=thread.id,
                message_id=message.id,
                properties={
                    "contentType": content.kind.value,
                    "chunkCount": result.chunk_count,
                    "originalLength": len(content.text),
                },
            )
        else:
            self._analytics.record(
                "error_occurred",
                user_id=user_id,
                thread_id=thread.id,
                message_id=message.id,
                properties={
                    "errorType": "vector_storage",
                    "error": result.error,
                    "failedBatches": result.failed_batches,
                },
            )
