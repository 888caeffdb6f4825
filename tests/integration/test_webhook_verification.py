import base64
import hashlib
import hmac
import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from coachdesk.dependencies import (
    get_line_channel_secret,
    get_messaging,
    get_record_store,
    get_welcome_back_enabled,
)
from coachdesk.routes import line
from coachdesk.services.line.messaging_client import LineProfile
from coachdesk.services.line.signature import verify_line_signature

SECRET = "test-secret"


def _make_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def _body(user_id="U1"):
    payload = {
        "events": [
            {
                "type": "message",
                "message": {"type": "text", "text": "Hello"},
                "source": {"type": "user", "userId": user_id},
                "replyToken": "r",
            }
        ]
    }
    return json.dumps(payload).encode("utf-8")


@pytest.fixture
def client(store, messaging):
    app = FastAPI()
    app.include_router(line.router)
    app.dependency_overrides[get_record_store] = lambda: store
    app.dependency_overrides[get_messaging] = lambda: messaging
    app.dependency_overrides[get_line_channel_secret] = lambda: SECRET
    app.dependency_overrides[get_welcome_back_enabled] = lambda: False
    return TestClient(app)


def test_verify_line_signature():
    body = b'{"events": []}'
    assert verify_line_signature(SECRET, body, _make_signature(SECRET, body)) is True
    assert verify_line_signature(SECRET, body, _make_signature("other", body)) is False
    assert verify_line_signature(None, body, _make_signature(SECRET, body)) is False
    assert verify_line_signature(SECRET, body, None) is False


def test_webhook_valid_signature_registers_sender(client, store, messaging):
    messaging.profiles["U1"] = LineProfile(user_id="U1", display_name="Alice")
    raw = _body("U1")

    response = client.post(
        "/line/webhook",
        content=raw,
        headers={"x-line-signature": _make_signature(SECRET, raw), "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["results"][0]["outcome"] == "registered"
    assert [s.name for s in store.students.values()] == ["Alice"]


def test_webhook_invalid_signature(client, store):
    raw = _body()

    response = client.post(
        "/line/webhook",
        content=raw,
        headers={"x-line-signature": "bad", "Content-Type": "application/json"},
    )

    assert response.status_code == 401
    assert store.students == {}


def test_webhook_missing_signature(client, store):
    response = client.post(
        "/line/webhook", content=_body(), headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 401
    assert store.calls == []


def test_webhook_missing_secret(client, store):
    client.app.dependency_overrides[get_line_channel_secret] = lambda: None
    raw = _body()

    response = client.post(
        "/line/webhook",
        content=raw,
        headers={"x-line-signature": _make_signature(SECRET, raw)},
    )

    assert response.status_code == 401
