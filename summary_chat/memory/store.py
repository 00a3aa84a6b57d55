"""
Retrieval index adapter.

Offloads full document text into a per-thread namespace and pulls
matching chunks back for follow-up questions. Every backend call is
bounded by a timeout and a small linear-backoff retry; callers always
get a result object back, never an exception.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from summary_chat.config import (
    INDEX_BATCH_SIZE,
    INDEX_MAX_RETRIES,
    INDEX_RETRY_BACKOFF_SECONDS,
    INDEX_TIMEOUT_SECONDS,
    RETRIEVAL_MAX_CHUNKS,
)
from summary_chat.memory.chunker import chunk_text
from summary_chat.memory.qdrant_client import thread_namespace

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTEXT_SEPARATOR = "\n\n"


@dataclass
class ChunkMetadata:
    thread_id: int
    message_id: int
    content_type: str
    user_id: str


@dataclass
class StoreResult:
    chunk_count: int
    ok: bool
    failed_batches: int = 0
    error: Optional[str] = None


@dataclass
class QueryResult:
    context: str
    chunk_count: int
    ok: bool
    error: Optional[str] = None


class RetrievalIndex:

    def __init__(
        self,
        embedder,
        vector_db,
        timeout: float = INDEX_TIMEOUT_SECONDS,
        max_retries: int = INDEX_MAX_RETRIES,
        backoff: float = INDEX_RETRY_BACKOFF_SECONDS,
        batch_size: int = INDEX_BATCH_SIZE,
    ):
        self._embedder = embedder
        self._vector_db = vector_db
        self._timeout = timeout
        self._max_retries = max_retries
        self._backoff = backoff
        self._batch_size = batch_size

    # ============================================================
    # TIMEOUT + RETRY
    # ============================================================

    async def _with_timeout_and_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
    ) -> T:

        last_error: Optional[BaseException] = None

        for attempt in range(self._max_retries + 1):

            try:

                return await asyncio.wait_for(operation(), timeout=self._timeout)

            except Exception as e:

                last_error = e

                logger.warning(
                    "Index operation attempt failed",
                    extra={
                        "operation": operation_name,
                        "attempt": attempt + 1,
                        "error": str(e) or type(e).__name__,
                    },
                )

                if attempt == self._max_retries:
                    break

                await asyncio.sleep(self._backoff * (attempt + 1))

        raise last_error

    # ============================================================
    # STORE
    # ============================================================

    async def store(self, text: str, metadata: ChunkMetadata) -> StoreResult:

        try:
            chunks = chunk_text(text)
        except ValueError as e:
            return StoreResult(chunk_count=0, ok=False, error=str(e))

        if not chunks:
            return StoreResult(chunk_count=0, ok=False, error="No content to index")

        namespace = thread_namespace(metadata.thread_id)

        total_batches = (len(chunks) + self._batch_size - 1) // self._batch_size

        stored = 0
        failed_batches = 0
        last_error = None

        for batch_no, start in enumerate(range(0, len(chunks), self._batch_size), start=1):

            batch = chunks[start:start + self._batch_size]

            payloads = [
                {
                    "text": chunk,
                    "thread_id": metadata.thread_id,
                    "message_id": metadata.message_id,
                    "content_type": metadata.content_type,
                    "user_id": metadata.user_id,
                    "chunk_idx": start + i,
                }
                for i, chunk in enumerate(batch)
            ]

            async def _store_batch(batch=batch, payloads=payloads):
                vectors = await self._embedder.embed(batch)
                return await self._vector_db.upsert_chunks(namespace, vectors, payloads)

            try:

                stored += await self._with_timeout_and_retry(
                    _store_batch,
                    f"store batch {batch_no}/{total_batches}",
                )

            except Exception as e:

                failed_batches += 1
                last_error = str(e) or type(e).__name__

                logger.error(
                    "Index batch store failed, continuing",
                    extra={
                        "thread_id": metadata.thread_id,
                        "message_id": metadata.message_id,
                        "batch": batch_no,
                        "error": last_error,
                    },
                )

        logger.info(
            "Index store completed",
            extra={
                "thread_id": metadata.thread_id,
                "message_id": metadata.message_id,
                "chunks": len(chunks),
                "stored": stored,
                "failed_batches": failed_batches,
            },
        )

        return StoreResult(
            chunk_count=stored,
            ok=failed_batches == 0,
            failed_batches=failed_batches,
            error=last_error,
        )

    # ============================================================
    # QUERY
    # ============================================================

    async def query(
        self,
        text: str,
        thread_id: int,
        max_chunks: int = RETRIEVAL_MAX_CHUNKS,
    ) -> QueryResult:

        namespace = thread_namespace(thread_id)

        async def _search():
            vectors = await self._embedder.embed([text])
            return await self._vector_db.search(namespace, vectors[0], max_chunks)

        try:

            hits = await self._with_timeout_and_retry(_search, "similarity search")

        except Exception as e:

            error = str(e) or type(e).__name__

            logger.error(
                "Index query failed, continuing without retrieved context",
                extra={"thread_id": thread_id, "error": error},
            )

            return QueryResult(context="", chunk_count=0, ok=False, error=error)

        context = CONTEXT_SEPARATOR.join(hit["text"] for hit in hits if hit.get("text"))

        logger.info(
            "Index query completed",
            extra={"thread_id": thread_id, "chunks": len(hits)},
        )

        return QueryResult(context=context, chunk_count=len(hits), ok=True)
