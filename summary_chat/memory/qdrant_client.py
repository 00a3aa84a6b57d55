import logging
import uuid
from typing import Dict, List, Optional

from qdrant_client import AsyncQdrantClient

from qdrant_client.http.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from summary_chat.config import (
    QDRANT_URL,
    QDRANT_API_KEY,
    QDRANT_COLLECTION,
)

logger = logging.getLogger(__name__)


def thread_namespace(thread_id) -> str:
    return f"thread-{thread_id}"


class QdrantVectorDB:
    """
    Async Qdrant wrapper.

    Every point carries a `namespace` payload so that each thread gets
    its own partition of one shared collection.
    """

    def __init__(
        self,
        dim: int,
        client: Optional[AsyncQdrantClient] = None,
        collection: str = QDRANT_COLLECTION,
    ):

        self._dim = dim

        self._client = client or AsyncQdrantClient(
            url=QDRANT_URL,
            api_key=QDRANT_API_KEY,
            timeout=60,
        )

        self._collection = collection
        self._ready = False

    async def ensure_collection(self):
        """
        Ensures collection exists AND the namespace payload index exists.
        """

        if self._ready:
            return

        if not await self._client.collection_exists(self._collection):

            await self._client.create_collection(
                collection_name=self._collection,
                vectors_config=VectorParams(
                    size=self._dim,
                    distance=Distance.COSINE,
                ),
            )

            logger.info(
                "Qdrant collection created",
                extra={"collection": self._collection},
            )

            await self._client.create_payload_index(
                collection_name=self._collection,
                field_name="namespace",
                field_schema=PayloadSchemaType.KEYWORD,
            )

        self._ready = True

    async def upsert_chunks(
        self,
        namespace: str,
        vectors,
        payloads: List[Dict],
    ) -> int:

        await self.ensure_collection()

        points = [
            PointStruct(
                id=str(uuid.uuid4()),
                vector=[float(x) for x in vector],
                payload={**payload, "namespace": namespace},
            )
            for vector, payload in zip(vectors, payloads)
        ]

        await self._client.upsert(
            collection_name=self._collection,
            points=points,
        )

        return len(points)

    async def search(self, namespace: str, vector, limit: int) -> List[Dict]:

        await self.ensure_collection()

        response = await self._client.query_points(
            collection_name=self._collection,
            query=[float(x) for x in vector],
            query_filter=Filter(
                must=[
                    FieldCondition(
                        key="namespace",
                        match=MatchValue(value=namespace),
                    )
                ]
            ),
            limit=limit,
            with_payload=True,
        )

        return [
            {
                "text": (point.payload or {}).get("text", ""),
                "message_id": (point.payload or {}).get("message_id"),
                "chunk_idx": (point.payload or {}).get("chunk_idx"),
                "similarity_score": float(point.score),
            }
            for point in response.points
        ]
