"""Thread and message persistence used by the chat pipeline."""
from typing import List, Optional

from sqlalchemy import delete, desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from summary_chat.db.models import (
    ContentKind,
    Message,
    OffloadStatus,
    SenderType,
    SummaryRole,
    Thread,
    ThreadStatus,
    utcnow,
)


class ChatStore:
    """
    Async CRUD over threads and messages.

    Each method runs in its own transaction. Returned rows are detached
    (sessions don't expire on commit) so callers can read them freely.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ============================================================
    # THREADS
    # ============================================================

    async def create_thread(self, user_id: str, title: Optional[str] = None) -> Thread:
        """Create a new thread for a user."""
        thread = Thread(user_id=user_id, title=title or "New Chat", status=ThreadStatus.PENDING)

        async with self._session_factory() as session, session.begin():
            session.add(thread)

        return thread

    async def find_thread_for_user(self, thread_id: int, user_id: str) -> Optional[Thread]:
        """Retrieve a thread only if it belongs to the user."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Thread).where(Thread.id == thread_id, Thread.user_id == user_id)
            )
            return result.scalars().first()

    async def list_threads_for_user(self, user_id: str, skip: int = 0, limit: int = 50) -> List[Thread]:
        """Retrieve a user's threads, most recently updated first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Thread)
                .where(Thread.user_id == user_id)
                .order_by(desc(Thread.updated_at), desc(Thread.id))
                .offset(skip)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def update_thread_status(self, thread_id: int, status: ThreadStatus) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(Thread)
                .where(Thread.id == thread_id)
                .values(status=status, updated_at=utcnow())
            )

    async def update_thread_title(self, thread_id: int, title: str) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(Thread)
                .where(Thread.id == thread_id)
                .values(title=title, updated_at=utcnow())
            )

    async def get_thread(self, thread_id: int) -> Optional[Thread]:
        async with self._session_factory() as session:
            return await session.get(Thread, thread_id)

    # ============================================================
    # MESSAGES
    # ============================================================

    async def create_message(
        self,
        thread_id: int,
        user_id: str,
        sender_type: SenderType,
        content: str,
        content_type: ContentKind = ContentKind.TEXT,
        file_name: Optional[str] = None,
        file_size: Optional[int] = None,
        link_url: Optional[str] = None,
        has_full_content: bool = False,
        summary_role: Optional[SummaryRole] = None,
    ) -> Message:
        message = Message(
            thread_id=thread_id,
            user_id=user_id,
            sender_type=sender_type,
            content_type=content_type,
            content=content,
            file_name=file_name,
            file_size=file_size,
            link_url=link_url,
            has_full_content=has_full_content,
            summary_role=summary_role,
            offload_status=None,
            retrieved_context=None,
            context_source_id=None,
        )

        async with self._session_factory() as session, session.begin():
            session.add(message)

        return message

    async def list_messages(self, thread_id: int) -> List[Message]:
        """All messages of a thread in conversation order."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Message)
                .where(Message.thread_id == thread_id)
                .order_by(Message.created_at, Message.id)
            )
            return list(result.scalars().all())

    async def delete_message(self, message_id: int) -> bool:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(delete(Message).where(Message.id == message_id))
            return result.rowcount > 0

    async def update_retrieved_context(
        self,
        message_id: int,
        context: str,
        source_id: Optional[int] = None,
    ) -> None:
        """Cache retrieved index text on a user message so retries reuse it."""
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(Message)
                .where(Message.id == message_id)
                .values(retrieved_context=context, context_source_id=source_id or message_id)
            )

    async def update_offload_status(self, message_id: int, status: OffloadStatus) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(Message).where(Message.id == message_id).values(offload_status=status)
            )

    async def has_primary_summary(self, thread_id: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Message.id)
                .where(
                    Message.thread_id == thread_id,
                    Message.summary_role == SummaryRole.PRIMARY,
                )
                .limit(1)
            )
            return result.first() is not None
