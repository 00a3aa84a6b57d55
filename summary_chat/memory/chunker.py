# summary_chat/memory/chunker.py

import logging
from typing import List

from summary_chat.config import (
    CHUNK_SIZE,
    CHUNK_OVERLAP,
)

logger = logging.getLogger(__name__)


def chunk_text(
    text: str,
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> List[str]:
    """
    Split text into overlapping fixed-size character windows.

    Architecture contract:
    sizing policy → chunker → embedder → vector_store

    Windows prefer to end on whitespace when one is available in the
    last fifth of the window, so words are rarely cut in half.

    Guarantees:
    • deterministic chunk generation
    • no infinite loops
    • no empty chunks
    """

    if not text or not text.strip():
        logger.warning("Chunking skipped: empty text")
        return []

    if size <= 0:
        raise ValueError(f"Invalid chunk size: {size}")

    if overlap < 0:
        raise ValueError(f"Invalid chunk overlap: {overlap}")

    if overlap >= size:
        raise ValueError(
            f"Overlap must be smaller than chunk size "
            f"(overlap={overlap}, size={size})"
        )

    text = text.strip()
    total = len(text)

    chunks = []
    start = 0

    while start < total:

        end = min(start + size, total)

        if end < total:
            cut = text.rfind(" ", start + size - size // 5, end)
            if cut > start:
                end = cut

        chunk = text[start:end].strip()

        if chunk:
            chunks.append(chunk)

        if end >= total:
            break

        # always advance, even when the soft cut shortened the window
        start = max(end - overlap, start + 1)

    logger.info(
        "Chunking completed",
        extra={
            "total_characters": total,
            "chunk_size": size,
            "overlap": overlap,
            "chunks_created": len(chunks),
        },
    )

    return chunks
