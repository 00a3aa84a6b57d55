# summary_chat/workflow/chat_service.py
"""
Submission pipeline.

submit: extract → resolve thread → size + persist → generate
retry:  discard last assistant turn → generate

Input and extraction errors surface before anything is written.
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from summary_chat.config import THREAD_TITLE_LENGTH
from summary_chat.db.models import ContentKind, Message, Thread
from summary_chat.errors import InputError, ThreadNotFound
from summary_chat.memory.loader import ContentExtractor, ExtractedContent, UploadedFile
from summary_chat.workflow.locks import ThreadLockRegistry

logger = logging.getLogger(__name__)


@dataclass
class Submission:
    thread_id: int
    created: bool
    messages: List[Message]
    deltas: AsyncIterator[str]


def derive_title(text: Optional[str], file: Optional[UploadedFile]) -> str:

    source = (text or "").strip() or (file.file_name if file and file.file_name else "")

    return source[:THREAD_TITLE_LENGTH] or "New Chat"


class ChatService:
    """
    Produced interface of the pipeline: submit, retry and thread reads.

    All collaborators are injected once per process.
    """

    def __init__(
        self,
        store,
        extractor: ContentExtractor,
        sizing,
        orchestrator,
        analytics=None,
        locks: Optional[ThreadLockRegistry] = None,
    ):
        self.store = store
        self._extractor = extractor
        self._sizing = sizing
        self.orchestrator = orchestrator
        self._analytics = analytics
        self._locks = locks or ThreadLockRegistry()

    # ============================================================
    # SUBMIT
    # ============================================================

    async def submit(
        self,
        user_id: str,
        thread_id: Optional[int] = None,
        text: Optional[str] = None,
        file: Optional[UploadedFile] = None,
    ) -> Submission:

        if file is None and (text is None or not text.strip()):
            raise InputError("Provide text or a file.")

        thread = None

        if thread_id is not None:

            thread = await self.store.find_thread_for_user(thread_id, user_id)

            if thread is None:
                raise ThreadNotFound(thread_id)

        contents = await self._extractor.extract_submission(text=text, file=file)

        created = False

        if thread is None:

            thread = await self.store.create_thread(user_id, title=derive_title(text, file))
            created = True

            logger.info("thread_created", extra={"thread_id": thread.id, "user_id": user_id})

            self._record("thread_created", user_id, thread.id, properties={"title": thread.title})

        await self._locks.acquire(thread.id)

        try:

            messages = []

            for content in contents:
                message = await self._sizing.persist(thread, user_id, content)
                messages.append(message)
                self._record_content(user_id, thread, message, content)

            deltas = await self.orchestrator.stream(
                thread,
                user_id,
                on_finish=lambda: self._locks.release(thread.id),
            )

        except BaseException:
            self._locks.release(thread.id)
            raise

        logger.info(
            "submission_accepted",
            extra={
                "thread_id": thread.id,
                "new_thread": created,
                "messages": [m.id for m in messages],
            },
        )

        return Submission(thread_id=thread.id, created=created, messages=messages, deltas=deltas)

    # ============================================================
    # RETRY
    # ============================================================

    async def retry(self, user_id: str, thread_id: int) -> AsyncIterator[str]:

        await self._locks.acquire(thread_id)

        try:

            return await self.orchestrator.retry(
                user_id,
                thread_id,
                on_finish=lambda: self._locks.release(thread_id),
            )

        except BaseException:
            self._locks.release(thread_id)
            raise

    # ============================================================
    # READS
    # ============================================================

    async def list_threads(self, user_id: str) -> List[Thread]:

        return await self.store.list_threads_for_user(user_id)

    async def list_messages(self, user_id: str, thread_id: int) -> List[Message]:

        thread = await self.store.find_thread_for_user(thread_id, user_id)

        if thread is None:
            raise ThreadNotFound(thread_id)

        return await self.store.list_messages(thread.id)

    # ============================================================
    # ANALYTICS
    # ============================================================

    def _record_content(self, user_id: str, thread: Thread, message: Message, content: ExtractedContent):

        if content.kind == ContentKind.PDF:
            self._record(
                "pdf_upload", user_id, thread.id, message.id,
                {"fileName": content.file_name, "fileSize": content.file_size},
            )

        elif content.kind == ContentKind.LINK:
            self._record(
                "linkurl_analysis", user_id, thread.id, message.id,
                {"url": content.link_url},
            )

        self._record(
            "content_processing", user_id, thread.id, message.id,
            {
                "contentType": content.kind.value,
                "originalLength": len(content.text),
                "storedLength": len(message.content),
                "hasFullContent": message.has_full_content,
                "summaryRole": message.summary_role.value if message.summary_role else None,
                "linkFetchFailed": content.fetch_failed,
            },
        )

    def _record(self, event_type, user_id, thread_id=None, message_id=None, properties=None):

        if self._analytics is None:
            return

        self._analytics.record(
            event_type,
            user_id=user_id,
            thread_id=thread_id,
            message_id=message_id,
            properties=properties,
        )
