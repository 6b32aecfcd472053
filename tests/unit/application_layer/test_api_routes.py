"""
Unit Tests for API Routes

Runs the full application (lifespan included) with the fake completion
provider and the fake gateway transport, and drives it through TestClient.
"""

import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from nanochat.application.app import create_app
from nanochat.core.config.settings import Settings
from test_fixtures import OTHER_USER_ID, USER_ID, FakeGateway
from test_fixtures.gateway_factory import IMAGE_MODEL_ID, PNG_BYTES, TEXT_MODEL_ID

HEADERS = {"X-User-ID": USER_ID}


@pytest.fixture
def client(tmp_path):
    settings = Settings(
        USE_FAKE_LLM=True,
        NANOGPT_API_KEY="test-key",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        LOG_FORMAT="console",
        ENVIRONMENT="test",
    )
    app = create_app(settings, transport=FakeGateway().transport)
    with TestClient(app) as test_client:
        yield test_client


def wait_until_idle(client, conversation_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        conversation = client.get(f"/api/conversations/{conversation_id}", headers=HEADERS).json()
        if not conversation["generating"] or time.monotonic() > deadline:
            return conversation
        time.sleep(0.02)


def start(client, **body) -> str:
    response = client.post("/api/generate-message", json=body, headers=HEADERS)
    assert response.status_code == 200, response.text
    return response.json()["conversation_id"]


@pytest.mark.unit
class TestGenerateMessage:
    def test_happy_path(self, client):
        # Act
        conversation_id = start(client, message="Hello there", model_id=TEXT_MODEL_ID)
        conversation = wait_until_idle(client, conversation_id)
        messages = client.get(f"/api/conversations/{conversation_id}/messages", headers=HEADERS).json()

        # Assert
        assert conversation["generating"] is False
        assert [m["role"] for m in messages] == ["user", "assistant"]
        reply = messages[1]
        assert reply["content"].startswith("Lorem ipsum")
        assert reply["content_html"].startswith("<p>Lorem ipsum")
        assert reply["error"] is None
        assert reply["cost_usd"] > 0

    def test_missing_user_header(self, client):
        response = client.post("/api/generate-message", json={"message": "Hi", "model_id": TEXT_MODEL_ID})

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    def test_validation_error_is_400(self, client):
        response = client.post("/api/generate-message", json={"model_id": TEXT_MODEL_ID}, headers=HEADERS)

        assert response.status_code == 400
        body = response.json()
        assert body["ok"] is False
        assert body["error"] == "You must provide a message when creating a new conversation"

    def test_unknown_model(self, client):
        response = client.post(
            "/api/generate-message", json={"message": "Hi", "model_id": "nope/model"}, headers=HEADERS
        )

        assert response.status_code == 400
        assert response.json()["error_type"] == "ModelNotEnabledError"

    def test_foreign_conversation(self, client):
        conversation_id = start(client, message="Hello", model_id=TEXT_MODEL_ID)
        wait_until_idle(client, conversation_id)

        response = client.post(
            "/api/generate-message",
            json={"message": "Mine now", "model_id": TEXT_MODEL_ID, "conversation_id": conversation_id},
            headers={"X-User-ID": OTHER_USER_ID},
        )

        assert response.status_code == 403

    def test_double_submission_is_409(self, client):
        # Arrange - a finished conversation whose flag is set again
        conversation_id = start(client, message="Hello", model_id=TEXT_MODEL_ID)
        wait_until_idle(client, conversation_id)
        store = client.app.state.store
        client.portal.call(store.set_generating, conversation_id, True)

        # Act
        response = client.post(
            "/api/generate-message",
            json={"message": "Again", "model_id": TEXT_MODEL_ID, "conversation_id": conversation_id},
            headers=HEADERS,
        )

        # Assert
        assert response.status_code == 409
        assert response.json()["error_type"] == "GenerationInProgressError"
        messages = client.portal.call(store.list_messages, conversation_id)
        assert len(messages) == 2

    def test_image_generation_is_served_from_storage(self, client):
        conversation_id = start(client, message="A red fox", model_id=IMAGE_MODEL_ID)
        wait_until_idle(client, conversation_id)
        messages = client.get(f"/api/conversations/{conversation_id}/messages", headers=HEADERS).json()

        url = messages[-1]["content"].removeprefix("![Generated Image](").rstrip(")")
        response = client.get(url)

        assert response.status_code == 200
        assert response.content == PNG_BYTES
        assert response.headers["content-type"] == "image/png"


@pytest.mark.unit
class TestCancelGeneration:
    def test_nothing_to_cancel(self, client):
        conversation_id = start(client, message="Hello", model_id=TEXT_MODEL_ID)
        wait_until_idle(client, conversation_id)

        response = client.post(
            "/api/cancel-generation", json={"conversation_id": conversation_id}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "cancelled": False}

    def test_unknown_conversation(self, client):
        response = client.post("/api/cancel-generation", json={"conversation_id": "missing"}, headers=HEADERS)

        assert response.status_code == 403


@pytest.mark.unit
class TestConversationRoutes:
    def test_foreign_conversation_hidden(self, client):
        conversation_id = start(client, message="Hello", model_id=TEXT_MODEL_ID)
        wait_until_idle(client, conversation_id)

        response = client.get(f"/api/conversations/{conversation_id}", headers={"X-User-ID": OTHER_USER_ID})

        assert response.status_code == 403
        assert response.json()["error_type"] == "ConversationNotFoundError"


@pytest.mark.unit
class TestFollowUpRoute:
    def test_unparseable_suggestions_yield_empty_list(self, client):
        conversation_id = start(client, message="Hello", model_id=TEXT_MODEL_ID)
        wait_until_idle(client, conversation_id)
        messages = client.get(f"/api/conversations/{conversation_id}/messages", headers=HEADERS).json()

        response = client.post(
            "/api/generate-follow-up-questions",
            json={"conversation_id": conversation_id, "message_id": messages[-1]["id"]},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "suggestions": []}

    def test_unknown_message(self, client):
        conversation_id = start(client, message="Hello", model_id=TEXT_MODEL_ID)
        wait_until_idle(client, conversation_id)

        response = client.post(
            "/api/generate-follow-up-questions",
            json={"conversation_id": conversation_id, "message_id": "missing"},
            headers=HEADERS,
        )

        assert response.status_code == 404


@pytest.mark.unit
class TestServiceRoutes:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "version": "1.0.0",
            "environment": "test",
            "active_generations": 0,
        }

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/api/health"

    def test_missing_file(self, client):
        response = client.get("/api/storage/missing")

        assert response.status_code == 404
        body = response.json()
        assert body["ok"] is False
        assert body["error"] == "File not found"
        assert body["error_type"] == "StoredFileNotFoundError"
        assert body["details"] == {"file_id": "missing"}

    def test_file_bytes_removed_from_disk(self, client):
        storage = client.app.state.file_storage
        stored = client.portal.call(storage.save, USER_ID, b"abc", "image/png", "a.png")
        Path(stored.path).unlink()

        response = client.get(f"/api/storage/{stored.id}")

        assert response.status_code == 404
        assert response.json()["error_type"] == "StoredFileNotFoundError"

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    def test_request_id_is_generated(self, client):
        assert client.get("/api/health").headers["X-Request-ID"]
