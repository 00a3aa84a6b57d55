# summary_chat/workflow/context.py
"""
Conversation context assembly.

Rebuilds the model's view of a thread from persisted messages on every
generation attempt: one system turn, then every message in stored
order, with retrieved index text folded into the final user turn when
the thread needs it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from summary_chat.config import RETRIEVAL_MAX_CHUNKS
from summary_chat.db.models import (
    Message,
    OffloadStatus,
    SenderType,
    SummaryRole,
    Thread,
)
from summary_chat.prompts.prompt_builder import (
    append_retrieved_context,
    build_system_prompt,
    format_turn,
)
from summary_chat.prompts.system_prompts import (
    OFFLOAD_FAILED_WARNING,
    RETRIEVAL_FAILED_WARNING,
    SUMMARY_MODE_NOTE,
)

logger = logging.getLogger(__name__)


# Where the retrieved text for the final user turn came from
RETRIEVAL_SKIPPED = "skipped"
RETRIEVAL_SUMMARY_MODE = "summary_mode"
RETRIEVAL_CACHED = "cached"
RETRIEVAL_QUERIED = "queried"
RETRIEVAL_EMPTY = "empty"
RETRIEVAL_FAILED = "failed"


@dataclass
class AssembledContext:
    turns: List[Dict[str, str]]
    system_prompt: str
    retrieval: str = RETRIEVAL_SKIPPED
    notes: List[str] = field(default_factory=list)


def has_full_primary(messages: Sequence[Message]) -> bool:

    return any(
        m.has_full_content and m.summary_role == SummaryRole.PRIMARY
        for m in messages
    )


class ContextAssembler:

    def __init__(
        self,
        store,
        index,
        analytics=None,
        max_chunks: int = RETRIEVAL_MAX_CHUNKS,
    ):
        self._store = store
        self._index = index
        self._analytics = analytics
        self._max_chunks = max_chunks

    async def assemble(self, thread: Thread, messages: Sequence[Message]) -> AssembledContext:

        turns = [format_turn(m) for m in messages]
        notes: List[str] = []

        if any(m.is_truncated and m.offload_status == OffloadStatus.FAILED for m in messages):
            notes.append(OFFLOAD_FAILED_WARNING)

        retrieval = RETRIEVAL_SKIPPED

        if len(messages) > 1 and messages[-1].sender_type == SenderType.USER:
            retrieval = await self._augment(thread, messages, turns, notes)

        system_prompt = build_system_prompt(notes)

        logger.info(
            "context_assembled",
            extra={
                "thread_id": thread.id,
                "messages": len(messages),
                "retrieval": retrieval,
                "notes": len(notes),
            },
        )

        return AssembledContext(
            turns=[{"role": "system", "content": system_prompt}] + turns,
            system_prompt=system_prompt,
            retrieval=retrieval,
            notes=notes,
        )

    async def _augment(
        self,
        thread: Thread,
        messages: Sequence[Message],
        turns: List[Dict[str, str]],
        notes: List[str],
    ) -> str:

        last = messages[-1]

        # A complete primary source already anchors the conversation
        if has_full_primary(messages):
            notes.append(SUMMARY_MODE_NOTE)
            return RETRIEVAL_SUMMARY_MODE

        # Reuse keeps the final turn byte-identical across retries
        if last.retrieved_context:
            turns[-1]["content"] = append_retrieved_context(turns[-1]["content"], last.retrieved_context)
            return RETRIEVAL_CACHED

        result = await self._index.query(last.content, thread.id, self._max_chunks)

        if not result.ok:

            notes.append(RETRIEVAL_FAILED_WARNING)

            self._record_error(thread, last, result.error)

            return RETRIEVAL_FAILED

        if not result.context:
            return RETRIEVAL_EMPTY

        turns[-1]["content"] = append_retrieved_context(turns[-1]["content"], result.context)

        await self._store.update_retrieved_context(last.id, result.context, source_id=last.id)
        last.retrieved_context = result.context

        return RETRIEVAL_QUERIED

    def _record_error(self, thread: Thread, message: Message, error: Optional[str]):

        if self._analytics is None:
            return

        self._analytics.record(
            "error_occurred",
            user_id=thread.user_id,
            thread_id=thread.id,
            message_id=message.id,
            properties={"errorType": "vector_retrieval", "error": error},
        )
