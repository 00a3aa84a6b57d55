# summary_chat/memory/embedder.py

"""
Async embedding wrapper.

Architecture contract:
chunker → embedder → vector_store

Guarantees:
• Always returns numpy float32 array
• Always normalized (cosine-ready)
• Fully observable via logs
"""

import logging
from typing import List, Optional

import numpy as np
from openai import AsyncOpenAI

from summary_chat.config import EMBEDDING_MODEL

logger = logging.getLogger(__name__)


_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class Embedder:
    """
    Generates normalized embeddings through the OpenAI API.

    Batching is the caller's concern: the retrieval index already sends
    fixed-size batches so a single request per call is enough.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = EMBEDDING_MODEL):

        if model not in _MODEL_DIMENSIONS:
            raise ValueError(f"Unsupported embedding model: {model}")

        self._client = client or AsyncOpenAI()
        self._model = model
        self._dimension = _MODEL_DIMENSIONS[model]

        logger.info(
            "Embedding model initialized",
            extra={"model": model, "dimension": self._dimension},
        )

    async def embed(self, texts: List[str]) -> np.ndarray:

        if not texts:

            logger.warning("Empty embedding request")

            return np.empty((0, self._dimension), dtype="float32")

        response = await self._client.embeddings.create(
            model=self._model,
            input=texts,
        )

        embeddings = np.array(
            [item.embedding for item in response.data],
            dtype="float32",
        )

        # Normalize for cosine similarity
        norms = np.linalg.norm(embeddings, axis=1, keepdims=True)

        embeddings = embeddings / np.clip(norms, 1e-10, None)

        logger.debug(
            "Embedding completed",
            extra={"chunks": len(texts), "shape": embeddings.shape},
        )

        return embeddings

    def get_dimension(self) -> int:
        """
        Required by QdrantVectorDB initialization.
        """
        return self._dimension
