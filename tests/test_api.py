# tests/test_api.py
import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import NullPool

from summary_chat.db.database import create_engine, create_session_factory, init_models
from summary_chat.db.models import SenderType
from summary_chat.db.store import ChatStore
from summary_chat import config
from summary_chat.api.auth import decode_user_id
from summary_chat.main import app, build_chat_service


def _events(response):
    """Decode the Server-Sent Events body of a streamed reply."""
    return [
        json.loads(line[len("data: "):])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]


@pytest.fixture
def api_store(database_url):
    """
    Store for API tests.

    The test client runs the app on its own event loop, so connections
    are never pooled across loops.
    """
    engine = create_engine(database_url, poolclass=NullPool)
    asyncio.run(init_models(engine))

    yield engine, ChatStore(create_session_factory(engine))

    asyncio.run(engine.dispose())


@pytest.fixture
def client(api_store, index, llm_client, analytics, metrics):
    """
    FastAPI test client wired to fakes.

    The lifespan is not entered; state is installed directly.
    """
    engine, store = api_store

    app.state.engine = engine
    app.state.analytics = analytics
    app.state.metrics = metrics
    app.state.chat_service = build_chat_service(store, index, llm_client, analytics, metrics)

    yield TestClient(app)

    for name in ("engine", "analytics", "metrics", "chat_service"):
        delattr(app.state, name)


@pytest.fixture
def auth(make_token):
    def _auth(user_id="user-1"):
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _auth


class TestAuthentication:

    def test_missing_token_is_rejected(self, client):
        response = client.get("/threads")

        assert response.status_code == 401
        assert response.json() == {"status": 401, "message": "Unauthorized"}

    def test_bad_signature_is_rejected(self, client, make_token):
        token = make_token("user-1", secret="not-the-secret")

        response = client.get("/threads", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_cookie_token_is_accepted(self, client, make_token):
        response = client.get("/threads", headers={"Cookie": f"token={make_token('user-1')}"})

        assert response.status_code == 200
        assert response.json() == {"threads": []}

    def test_tokens_rejected_without_configured_secret(self, client, make_token, monkeypatch):
        monkeypatch.setattr(config, "JWT_SECRET", None)

        token = make_token("victim", secret="change-me")

        response = client.get("/threads", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json() == {"status": 401, "message": "Unauthorized"}
        assert decode_user_id(token) is None
        assert decode_user_id(token, secret="change-me") == "victim"


class TestSubmitEndpoint:

    def test_text_submission_streams_reply(self, client, auth):
        response = client.post("/messages", data={"text": "Summarize my meeting notes"}, headers=auth())

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        thread_id = int(response.headers["X-Thread-Id"])
        events = _events(response)

        assert "".join(e["text"] for e in events if e["type"] == "delta") == "Summary: the document covers testing."
        assert events[-1] == {"type": "done", "thread_id": thread_id}

    def test_follow_up_reuses_thread(self, client, auth):
        first = client.post("/messages", data={"text": "First note"}, headers=auth())
        thread_id = first.headers["X-Thread-Id"]

        second = client.post("/messages", data={"text": "Follow up", "thread_id": thread_id}, headers=auth())

        assert second.status_code == 200
        assert second.headers["X-Thread-Id"] == thread_id

        messages = client.get(f"/threads/{thread_id}/messages", headers=auth()).json()["messages"]
        assert [m["sender_type"] for m in messages] == ["user", "assistant", "user", "assistant"]

    def test_empty_submission_is_bad_request(self, client, auth):
        response = client.post("/messages", data={"text": "   "}, headers=auth())

        assert response.status_code == 400
        assert response.json()["status"] == 400

    def test_non_integer_thread_id(self, client, auth):
        response = client.post("/messages", data={"text": "hi", "thread_id": "abc"}, headers=auth())

        assert response.status_code == 400

    def test_non_pdf_upload_is_rejected(self, client, auth):
        response = client.post(
            "/messages",
            files={"file": ("notes.txt", b"plain text", "text/plain")},
            headers=auth(),
        )

        assert response.status_code == 400
        assert "PDF" in response.json()["message"]

    def test_foreign_thread_is_not_found(self, client, auth):
        thread_id = client.post("/messages", data={"text": "mine"}, headers=auth("user-1")).headers["X-Thread-Id"]

        response = client.post(
            "/messages",
            data={"text": "peek", "thread_id": thread_id},
            headers=auth("user-2"),
        )

        assert response.status_code == 404
        assert response.json() == {"status": 404, "message": "Thread not found."}

    def test_generation_failure_is_reported_in_stream(self, client, auth, openai_client):
        openai_client.fail_on_create = True

        response = client.post("/messages", data={"text": "Summarize"}, headers=auth())

        events = _events(response)
        thread_id = response.headers["X-Thread-Id"]

        assert response.status_code == 200
        assert events[-1]["type"] == "error"
        assert events[-1]["status"] == 500

        [thread] = client.get("/threads", headers=auth()).json()["threads"]
        assert str(thread["id"]) == thread_id
        assert thread["status"] == "failed"


class TestThreadEndpoints:

    def test_retry_regenerates_reply(self, client, auth, openai_client):
        thread_id = client.post("/messages", data={"text": "Summarize"}, headers=auth()).headers["X-Thread-Id"]
        openai_client.deltas = ["Better summary."]

        response = client.post(f"/threads/{thread_id}/retry", headers=auth())

        assert response.status_code == 200
        assert response.headers["X-Thread-Id"] == thread_id
        assert [e["text"] for e in _events(response) if e["type"] == "delta"] == ["Better summary."]

        messages = client.get(f"/threads/{thread_id}/messages", headers=auth()).json()["messages"]
        assert [m["content"] for m in messages if m["sender_type"] == SenderType.ASSISTANT.value] == ["Better summary."]

    @pytest.mark.parametrize("method,path", [
        ("post", "/threads/abc/retry"),
        ("get", "/threads/abc/messages"),
    ])
    def test_malformed_thread_id_is_bad_request(self, client, auth, method, path):
        response = getattr(client, method)(path, headers=auth())

        body = response.json()

        assert response.status_code == 400
        assert body["status"] == 400
        assert "thread_id" in body["message"]
        assert "detail" not in body

    def test_retry_on_foreign_thread(self, client, auth):
        thread_id = client.post("/messages", data={"text": "mine"}, headers=auth("user-1")).headers["X-Thread-Id"]

        response = client.post(f"/threads/{thread_id}/retry", headers=auth("user-2"))

        assert response.status_code == 404

    def test_thread_listing(self, client, auth):
        client.post("/messages", data={"text": "A long enough opening line"}, headers=auth())

        threads = client.get("/threads", headers=auth()).json()["threads"]

        assert len(threads) == 1
        assert threads[0]["title"] == "A long enough openin"
        assert threads[0]["status"] == "success"
        assert client.get("/threads", headers=auth("user-2")).json() == {"threads": []}


class TestOperationalEndpoints:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "healthy", "analytics_enabled": False}

    def test_metrics_count_generations(self, client, auth):
        client.post("/messages", data={"text": "Summarize"}, headers=auth())

        metrics = client.get("/metrics").json()

        assert metrics["generations_total"] == 1
        assert metrics["generations_succeeded"] == 1
        assert metrics["total_tokens"] == 150
        assert "p95_latency" in metrics

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"

    def test_request_id_header(self, client):
        assert client.get("/").headers["X-Request-Id"]
