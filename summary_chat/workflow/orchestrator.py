# summary_chat/workflow/orchestrator.py
"""
Generation orchestration.

Each attempt marks the thread pending, rebuilds context from persisted
messages, and hands the model stream to a driver task. The driver owns
all persistence for the attempt, so a client that disconnects mid-stream
still ends with a durable thread status and, on success, the assistant
message.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional, Set

from summary_chat.db.models import SenderType, ThreadStatus, Thread
from summary_chat.errors import EmptyThread, GenerationError, SummaryChatError, ThreadNotFound
from summary_chat.llm.client import (
    GenerationFailure,
    GenerationOutcome,
    GenerationSuccess,
)
from summary_chat.workflow.context import AssembledContext

logger = logging.getLogger(__name__)

_DONE = object()


def status_for(outcome: GenerationOutcome) -> ThreadStatus:

    if isinstance(outcome, GenerationSuccess):
        return ThreadStatus.SUCCESS

    if isinstance(outcome, GenerationFailure):
        return ThreadStatus.FAILED

    raise TypeError(f"Unknown generation outcome: {outcome!r}")


class GenerationOrchestrator:

    def __init__(
        self,
        store,
        assembler,
        llm_client,
        analytics=None,
        metrics=None,
    ):
        self._store = store
        self._assembler = assembler
        self._llm = llm_client
        self._analytics = analytics
        self._metrics = metrics
        self._tasks: Set[asyncio.Task] = set()

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def stream(
        self,
        thread: Thread,
        user_id: str,
        on_finish: Optional[Callable[[], None]] = None,
    ) -> AsyncIterator[str]:
        """
        Start one generation attempt and return its text deltas.

        Errors raised here happen before the driver starts; the caller
        still owns `on_finish` in that case. Once this returns, the
        driver calls `on_finish` exactly once when the attempt settles.
        Iterating the result raises GenerationError if the attempt fails.
        """

        await self._store.update_thread_status(thread.id, ThreadStatus.PENDING)

        try:

            messages = await self._store.list_messages(thread.id)

            context = await self._assembler.assemble(thread, messages)

        except Exception as e:

            logger.error(
                "context_assembly_failed",
                extra={"thread_id": thread.id, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )

            await self._store.update_thread_status(thread.id, ThreadStatus.FAILED)

            if self._metrics is not None:
                self._metrics.record_failure()

            raise

        queue: asyncio.Queue = asyncio.Queue()

        task = asyncio.create_task(
            self._drive(thread, user_id, messages, context, queue, on_finish)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return self._relay(queue)

    async def retry(
        self,
        user_id: str,
        thread_id: int,
        on_finish: Optional[Callable[[], None]] = None,
    ) -> AsyncIterator[str]:
        """
        Discard the latest assistant turn (if any) and regenerate.

        Safe to repeat: context is always rebuilt from what is persisted.
        """

        thread = await self._store.find_thread_for_user(thread_id, user_id)

        if thread is None:
            raise ThreadNotFound(thread_id)

        messages = await self._store.list_messages(thread.id)

        if not messages:
            raise EmptyThread("Thread has no messages to retry.")

        last = messages[-1]

        if last.sender_type == SenderType.ASSISTANT:

            await self._store.delete_message(last.id)

            logger.info(
                "assistant_message_discarded",
                extra={"thread_id": thread.id, "message_id": last.id},
            )

        return await self.stream(thread, user_id, on_finish=on_finish)

    async def wait_idle(self):
        """Wait for all in-flight drivers (shutdown and tests)."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ============================================================
    # DRIVER
    # ============================================================

    @staticmethod
    async def _relay(queue: asyncio.Queue) -> AsyncIterator[str]:

        while True:

            item = await queue.get()

            if item is _DONE:
                return

            if isinstance(item, BaseException):
                raise item

            yield item

    async def _drive(
        self,
        thread: Thread,
        user_id: str,
        messages,
        context: AssembledContext,
        queue: asyncio.Queue,
        on_finish: Optional[Callable[[], None]],
    ):

        try:

            try:

                result = self._llm.generate(context.turns)

                async for delta in result.deltas:
                    queue.put_nowait(delta)

                outcome = await result.outcome

            except Exception as e:

                outcome = GenerationFailure(error=e)

            status = status_for(outcome)

            if status == ThreadStatus.SUCCESS:

                await self._complete(thread, user_id, outcome, context)
                queue.put_nowait(_DONE)

            elif status == ThreadStatus.FAILED:

                await self._fail(thread, user_id, messages, outcome)
                queue.put_nowait(
                    GenerationError(
                        "Failed to generate a response. Please retry.",
                        {"thread_id": thread.id, "error": str(outcome.error)},
                    )
                )

        except Exception as e:

            logger.error(
                "generation_persistence_failed",
                extra={"thread_id": thread.id, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )

            queue.put_nowait(
                e if isinstance(e, SummaryChatError)
                else GenerationError("Failed to save the response.", {"thread_id": thread.id})
            )

        finally:

            if on_finish is not None:
                on_finish()

    async def _complete(
        self,
        thread: Thread,
        user_id: str,
        outcome: GenerationSuccess,
        context: AssembledContext,
    ):

        latency = outcome.latency

        message = await self._store.create_message(
            thread_id=thread.id,
            user_id=user_id,
            sender_type=SenderType.ASSISTANT,
            content=outcome.text,
        )

        await self._store.update_thread_status(thread.id, ThreadStatus.SUCCESS)

        if self._metrics is not None:
            self._metrics.record_success(latency, outcome.usage)

        logger.info(
            "generation_completed",
            extra={
                "thread_id": thread.id,
                "message_id": message.id,
                "response_length": len(outcome.text),
                "total_tokens": outcome.usage.total_tokens,
                "latency_seconds": round(latency, 3),
            },
        )

        if self._analytics is None:
            return

        self._analytics.record(
            "llm_token_usage",
            user_id=user_id,
            thread_id=thread.id,
            message_id=message.id,
            properties={**outcome.usage.to_properties(), "model": getattr(self._llm, "model", None)},
        )

        self._analytics.record(
            "summarize_success",
            user_id=user_id,
            thread_id=thread.id,
            message_id=message.id,
            properties={
                "responseLength": len(outcome.text),
                "retrieval": context.retrieval,
                "latencySeconds": round(latency, 3),
            },
        )

    async def _fail(
        self,
        thread: Thread,
        user_id: str,
        messages,
        outcome: GenerationFailure,
    ):

        await self._store.update_thread_status(thread.id, ThreadStatus.FAILED)

        if self._metrics is not None:
            self._metrics.record_failure()

        logger.error(
            "generation_failed",
            extra={
                "thread_id": thread.id,
                "error": str(outcome.error),
                "error_type": type(outcome.error).__name__,
            },
        )

        if self._analytics is None:
            return

        self._analytics.record(
            "error_occurred",
            user_id=user_id,
            thread_id=thread.id,
            message_id=messages[-1].id if messages else None,
            properties={
                "errorType": "ai_generation",
                "error": str(outcome.error),
                "partialLength": len(outcome.partial_text),
            },
        )
