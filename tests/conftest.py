# tests/conftest.py
import asyncio
import os
from types import SimpleNamespace

# Keep test runs from writing log files or needing real credentials
os.environ["LOG_DIR"] = ""
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("JWT_SECRET", "test-signing-secret")

import numpy as np
import pytest
from jose import jwt
from sqlalchemy.pool import NullPool

from summary_chat.config import JWT_ALGORITHM, JWT_SECRET
from summary_chat.db.database import create_engine, create_session_factory, init_models
from summary_chat.db.store import ChatStore
from summary_chat.llm.client import LLMClient
from summary_chat.main import build_chat_service
from summary_chat.memory.store import QueryResult, StoreResult
from summary_chat.observability.metrics import MetricsTracker
from summary_chat.observability.posthog_client import AnalyticsSink


# ============================================================
# FAKE COLLABORATORS
# ============================================================

class RecordingAnalytics(AnalyticsSink):
    """Keeps every captured event in memory."""

    def __init__(self):
        self.events = []

    def _capture(self, distinct_id, event, properties):
        self.events.append(SimpleNamespace(user_id=distinct_id, event=event, properties=properties))

    def of_type(self, event):
        return [e for e in self.events if e.event == event]


class FakeIndex:
    """Stands in for RetrievalIndex; records every call."""

    def __init__(self):
        self.store_calls = []
        self.query_calls = []
        self.store_ok = True
        self.query_result = QueryResult(context="", chunk_count=0, ok=True)

    async def store(self, text, metadata):
        self.store_calls.append((text, metadata))

        if not self.store_ok:
            return StoreResult(chunk_count=0, ok=False, failed_batches=1, error="index unavailable")

        return StoreResult(chunk_count=len(text) // 1000 + 1, ok=True)

    async def query(self, text, thread_id, max_chunks=3):
        self.query_calls.append((text, thread_id, max_chunks))
        return self.query_result


class FakeEmbedder:
    """Deterministic 4-dimensional embeddings."""

    def __init__(self):
        self.calls = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        return np.array([[len(t), 1.0, 0.0, 0.0] for t in texts], dtype="float32")


class FakeVectorDB:
    """In-memory namespace → payload store with injectable failures."""

    def __init__(self):
        self.points = {}
        self.upsert_failures = 0
        self.search_failures = 0
        self.delay = 0.0

    async def upsert_chunks(self, namespace, vectors, payloads):

        if self.delay:
            await asyncio.sleep(self.delay)

        if self.upsert_failures:
            self.upsert_failures -= 1
            raise ConnectionError("qdrant unreachable")

        self.points.setdefault(namespace, []).extend(payloads)
        return len(payloads)

    async def search(self, namespace, vector, limit):

        if self.delay:
            await asyncio.sleep(self.delay)

        if self.search_failures:
            self.search_failures -= 1
            raise ConnectionError("qdrant unreachable")

        return [
            {"text": p["text"], "message_id": p["message_id"], "chunk_idx": p["chunk_idx"], "similarity_score": 0.9}
            for p in self.points.get(namespace, [])[:limit]
        ]


def _chunk(text=None, usage=None):
    choices = [] if text is None else [SimpleNamespace(delta=SimpleNamespace(content=text))]
    return SimpleNamespace(choices=choices, usage=usage)


class FakeOpenAI:
    """
    Minimal AsyncOpenAI look-alike for streaming chat completions.

    `fail_after` raises once that many deltas have been streamed;
    `fail_on_create` rejects the request outright; `gate`, when set to an
    asyncio.Event, holds the stream until the event fires.
    """

    def __init__(self):
        self.deltas = ["Summary: ", "the document ", "covers testing."]
        self.fail_after = None
        self.fail_on_create = False
        self.gate = None
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):

        self.requests.append(kwargs)

        if self.fail_on_create:
            raise RuntimeError("model unavailable")

        return self._stream(list(self.deltas), self.fail_after)

    async def _stream(self, deltas, fail_after):

        if self.gate is not None:
            await self.gate.wait()

        for i, delta in enumerate(deltas):
            if fail_after is not None and i == fail_after:
                raise RuntimeError("stream reset by upstream")
            yield _chunk(delta)

        if fail_after is not None and fail_after >= len(deltas):
            raise RuntimeError("stream reset by upstream")

        yield _chunk(usage=SimpleNamespace(
            prompt_tokens=120,
            completion_tokens=30,
            total_tokens=150,
            prompt_tokens_details=SimpleNamespace(cached_tokens=20),
        ))


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}"


@pytest.fixture
async def store(database_url):
    """Fresh on-disk SQLite store per test."""
    engine = create_engine(database_url, poolclass=NullPool)
    await init_models(engine)

    yield ChatStore(create_session_factory(engine))

    await engine.dispose()


@pytest.fixture
def analytics():
    return RecordingAnalytics()


@pytest.fixture
def metrics():
    return MetricsTracker()


@pytest.fixture
def index():
    return FakeIndex()


@pytest.fixture
def openai_client():
    return FakeOpenAI()


@pytest.fixture
def llm_client(openai_client):
    return LLMClient(client=openai_client, model="gpt-test")


@pytest.fixture
def service(store, index, llm_client, analytics, metrics):
    return build_chat_service(store, index, llm_client, analytics, metrics)


@pytest.fixture
def drain():
    """Collect a delta stream into one string."""

    async def _drain(deltas):
        return "".join([d async for d in deltas])

    return _drain


@pytest.fixture
def make_token():
    """
    Sign a session token the way the auth layer expects.

    Usage:
        headers = {"Authorization": f"Bearer {make_token('user-1')}"}
    """

    def _make(user_id="user-1", secret=JWT_SECRET):
        return jwt.encode({"userId": user_id}, secret, algorithm=JWT_ALGORITHM)

    return _make


@pytest.fixture
def sample_pdf_content():
    """
    Single-page PDF whose only text is "Quarterly revenue grew".

    Cross-reference offsets are computed so strict parsers accept it.
    """

    stream = b"BT /F1 12 Tf 72 712 Td (Quarterly revenue grew) Tj ET"

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    pdf = b"%PDF-1.4\n"
    offsets = []

    for number, body in enumerate(objects, start=1):
        offsets.append(len(pdf))
        pdf += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_at = len(pdf)

    pdf += b"xref\n0 %d\n" % (len(objects) + 1)
    pdf += b"0000000000 65535 f \n"

    for offset in offsets:
        pdf += b"%010d 00000 n \n" % offset

    pdf += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)

    return pdf
