# =============================================
# File: tests/test_chat_endpoint.py
# Purpose: HTTP surface: envelope shape, input validation, error mapping, session endpoints
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from contextlib import contextmanager

from fastapi.testclient import TestClient

from shopassist.dependencies import get_chat_service, get_session_store
from shopassist.services.chatbot import ChatConfig, ChatService
from shopassist.services.search import POPULAR_QUERY, ProductSearch
from shopassist.services.sessions import SessionStore
from shopassist.utils.errors import GenerationError
from shopassist.utils.prompting import GENERIC_ERROR_MESSAGE, WELCOME_MESSAGE
from tests.fakes import FakeGateway, FakeLLM, make_candidate


@contextmanager
def _mount_client(gateway=None, llm=None):
    # Stub index + model; the rest of the app is real
    from shopassist.main import app

    store = SessionStore()
    service = ChatService(store, ProductSearch(gateway or FakeGateway()), llm or FakeLLM(), config=ChatConfig())
    app.dependency_overrides[get_chat_service] = lambda: service
    app.dependency_overrides[get_session_store] = lambda: store
    try:
        with TestClient(app) as client:
            yield client, store
    finally:
        app.dependency_overrides.clear()


def test_greeting_envelope_uses_camel_case():
    with _mount_client() as (client, store):
        r = client.post("/chat", json={"message": "привіт"})
        assert r.status_code == 200
        body = r.json()
        assert body["response"] == WELCOME_MESSAGE
        assert body["productsFound"] == 0
        assert body["relevanceCheck"]["isRelevant"] is True
        assert body["products"] is None
        assert store.exists(body["sessionId"])
        assert r.headers.get("X-Request-ID")


def test_conversation_keeps_session():
    gw = FakeGateway(
        default_hits=[make_candidate(f"p{i}", title=f"Товар {i}") for i in range(4)],
        text_hits={POPULAR_QUERY: [make_candidate("pop0", title="Хіт продажів")]},
    )
    with _mount_client(gateway=gw) as (client, store):
        first = client.post("/chat", json={"message": "цинк"}).json()
        second = client.post("/chat", json={"message": "ще варіанти", "sessionId": first["sessionId"]}).json()
        assert second["sessionId"] == first["sessionId"]
        assert first["productsFound"] == 4 and len(first["products"]) == 3
        assert [p["id"] for p in second["products"]] == ["pop0"]
        card = first["products"][0]
        assert set(card) == {"id", "title", "brand", "price", "article", "image", "link", "reason"}


def test_empty_message_is_400():
    with _mount_client() as (client, _):
        assert client.post("/chat", json={"message": "   "}).status_code == 400
        assert client.post("/chat", json={}).status_code == 400


def test_too_long_message_is_400():
    with _mount_client() as (client, _):
        r = client.post("/chat", json={"message": "x" * 501})
        assert r.status_code == 400
        assert client.post("/chat", json={"message": "привіт " + "x" * 400}).status_code == 200


def test_malformed_session_is_400():
    with _mount_client() as (client, _):
        r = client.post("/chat", json={"message": "цинк", "sessionId": "not-a-uuid"})
        assert r.status_code == 400


def test_provider_failure_is_500_with_generic_message():
    gw = FakeGateway(default_hits=[make_candidate("p1")])
    with _mount_client(gateway=gw, llm=FakeLLM(answer_error=GenerationError("timeout"))) as (client, _):
        r = client.post("/chat", json={"message": "цинк"})
        assert r.status_code == 500
        assert r.json()["detail"] == GENERIC_ERROR_MESSAGE


def test_retrieval_failure_is_500():
    with _mount_client(gateway=FakeGateway(fail=True)) as (client, _):
        r = client.post("/chat", json={"message": "цинк"})
        assert r.status_code == 500
        assert r.json()["detail"] == GENERIC_ERROR_MESSAGE


def test_delete_session_then_404():
    with _mount_client() as (client, _):
        sid = client.post("/chat", json={"message": "привіт"}).json()["sessionId"]
        r = client.delete(f"/chat/{sid}")
        assert r.status_code == 200
        assert r.json()["success"] is True
        assert client.delete(f"/chat/{sid}").status_code == 404
        assert client.delete("/chat/garbage").status_code == 404


def test_stats_and_health():
    with _mount_client() as (client, _):
        client.post("/chat", json={"message": "привіт"})
        client.post("/chat", json={"message": "hello"})
        stats = client.get("/stats").json()
        assert stats["totalSessions"] == 2
        assert {"sessionId", "messageCount", "createdAt", "lastUpdatedAt"} <= set(stats["sessions"][0])
        health = client.get("/health").json()
        assert health == {"status": "ok", "sessions": 2}
