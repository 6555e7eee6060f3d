"""Integration tests for the REST and WebSocket surface (in-memory runtime)."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chat_engine.app import create_app
from chat_engine.domain.value_objects.enums import UserRole
from tests.conftest import (
    CLIENT_ID,
    OTHER_CLIENT_ID,
    PRO_ID,
    make_message,
    make_participant,
    make_runtime,
    make_token,
    seed_history,
)


def _auth(participant) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(participant)}"}


@pytest.fixture
def runtime(uow):
    return make_runtime(uow, message_max=3)


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime)) as client:
        yield client


@pytest.fixture
def as_client(client_user):
    return _auth(client_user)


@pytest.fixture
def as_pro(pro_user):
    return _auth(pro_user)


def _send(client, key, headers, text="hello"):
    return client.post(
        f"/api/v1/chat/conversations/{key}/messages", json={"text": text}, headers=headers,
    )


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_readyz_without_external_dependencies(client):
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ready"}


def test_invalid_token_is_401(client, conversation_key):
    resp = client.get(
        f"/api/v1/chat/conversations/{conversation_key}/messages",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert resp.status_code == 401


def test_open_or_create(client, as_client, conversation_key):
    resp = client.post(
        "/api/v1/chat/conversations/open-or-create",
        json={"client_id": CLIENT_ID, "professional_id": PRO_ID},
        headers=as_client,
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["conversation_key"] == conversation_key
    assert data["created"] is True
    assert data["client"]["display_name"] == "Carla"
    assert data["professional"]["role"] == "professional"


def test_open_or_create_two_clients_rejected(client, uow, as_client):
    uow.participants.add(make_participant(OTHER_CLIENT_ID, UserRole.CLIENT))

    resp = client.post(
        "/api/v1/chat/conversations/open-or-create",
        json={"client_id": CLIENT_ID, "professional_id": OTHER_CLIENT_ID},
        headers=as_client,
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_pairing"


def test_send_and_page_through_messages(client, as_client, as_pro, conversation_key):
    for text in ("one", "two", "three"):
        assert _send(client, conversation_key, as_client, text).status_code == 201

    first = client.get(
        f"/api/v1/chat/conversations/{conversation_key}/messages",
        params={"limit": 2},
        headers=as_pro,
    )
    assert first.status_code == 200
    page = first.json()
    assert [m["text"] for m in page["items"]] == ["one", "two"]
    assert page["items"][0]["status"] == "sent"
    assert page["items"][0]["recipient_id"] == PRO_ID

    rest = client.get(
        f"/api/v1/chat/conversations/{conversation_key}/messages",
        params={"limit": 2, "cursor": page["next_cursor"]},
        headers=as_pro,
    ).json()
    assert [m["text"] for m in rest["items"]] == ["three"]
    assert rest["next_cursor"] is None


def test_empty_message_rejected(client, as_client, conversation_key):
    resp = _send(client, conversation_key, as_client, "   ")

    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_rate_limit_returns_retry_after(client, as_client, conversation_key):
    for _ in range(3):
        assert _send(client, conversation_key, as_client).status_code == 201

    resp = _send(client, conversation_key, as_client)

    assert resp.status_code == 429
    assert resp.json()["code"] == "rate_limited"
    assert int(resp.headers["Retry-After"]) >= 1

    metrics = client.get("/internal/metrics").json()
    assert metrics["rate_limiter"]["total_denials"] == 1
    assert metrics["rate_limiter"]["denials_by_class"] == {"message": 1}


def test_outsider_cannot_read(client, uow, conversation_key):
    outsider = uow.participants.add(make_participant(OTHER_CLIENT_ID, UserRole.CLIENT))

    resp = client.get(
        f"/api/v1/chat/conversations/{conversation_key}/messages", headers=_auth(outsider),
    )

    assert resp.status_code == 403
    assert resp.json()["code"] == "unauthorized"


def test_ambiguous_key_then_resolve(client, uow, as_client, conversation_key):
    seed_history(uow, make_message(text="hello"))

    resp = client.get(f"/api/v1/chat/conversations/{PRO_ID}/messages", headers=as_client)
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "ambiguous_conversation_key"
    assert body["recovery"]["path"] == f"/api/v1/chat/resolve/{PRO_ID}"

    resolved = client.get(body["recovery"]["path"], headers=as_client)
    assert resolved.status_code == 200
    assert resolved.json() == {
        "status": "resolved", "original": PRO_ID, "conversation_key": conversation_key,
    }

    messages = client.get(
        f"/api/v1/chat/conversations/{resolved.json()['conversation_key']}/messages",
        headers=as_client,
    ).json()
    assert [m["text"] for m in messages["items"]] == ["hello"]


def test_resolve_without_history_is_404(client, as_client):
    resp = client.get(f"/api/v1/chat/resolve/{PRO_ID}", headers=as_client)

    assert resp.status_code == 404
    assert resp.json()["code"] == "unresolvable_conversation_key"


def test_mark_read_is_idempotent(client, uow, as_pro, conversation_key):
    (msg,) = seed_history(uow, make_message(text="read me"))
    url = f"/api/v1/chat/conversations/{conversation_key}/read"

    first = client.post(url, json={"message_ids": [str(msg.id)]}, headers=as_pro)
    second = client.post(url, json={"message_ids": [str(msg.id)]}, headers=as_pro)

    assert first.json()["message_ids"] == [str(msg.id)]
    assert second.json()["message_ids"] == []
    assert uow.messages.get(msg.id).read_at is not None


def test_conversation_list_and_search(client, uow, as_client, conversation_key):
    seed_history(
        uow,
        make_message(text="Can you fix a faucet?"),
        make_message(PRO_ID, CLIENT_ID, text="Sure, tomorrow"),
    )

    listed = client.get("/api/v1/chat/conversations", headers=as_client).json()
    assert len(listed) == 1
    assert listed[0]["conversation_key"] == conversation_key
    assert listed[0]["counterpart"]["id"] == PRO_ID
    assert listed[0]["unread_count"] == 1

    hits = client.get(
        f"/api/v1/chat/conversations/{conversation_key}/messages/search",
        params={"q": "FAUCET"},
        headers=as_client,
    ).json()
    assert [m["text"] for m in hits] == ["Can you fix a faucet?"]


def test_upload_ticket(client, as_client):
    resp = client.post(
        "/api/v1/chat/uploads",
        json={"file_name": "leak.jpg", "content_type": "image/jpeg"},
        headers=as_client,
    )

    assert resp.status_code == 201
    data = resp.json()
    assert data["image_url"].startswith("https://storage.test/chat-images/")
    assert data["upload_url"].startswith("https://storage.test/upload/chat-images/")
    assert "signature=" in data["upload_url"]


def test_upload_rejects_non_images(client, as_client):
    resp = client.post(
        "/api/v1/chat/uploads",
        json={"file_name": "cv.pdf", "content_type": "application/pdf"},
        headers=as_client,
    )

    assert resp.status_code == 422


def test_ws_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/chat?token=garbage"):
            pass

    assert exc_info.value.code == 4001


def test_ws_ping_pong(client, client_user):
    with client.websocket_connect(f"/ws/chat?token={make_token(client_user)}") as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_ws_join_send_and_rest_history(client, client_user, as_pro, conversation_key):
    with client.websocket_connect(f"/ws/chat?token={make_token(client_user)}") as ws:
        ws.send_json({"type": "join", "data": {"conversationKey": conversation_key}})
        joined = ws.receive_json()
        assert joined["type"] == "joined"

        ws.send_json(
            {
                "type": "send-message",
                "data": {"conversationKey": conversation_key, "text": "over the socket"},
            }
        )
        ack = ws.receive_json()
        assert ack["type"] == "message-sent-ack"
        assert ack["data"]["senderId"] == CLIENT_ID
        assert ack["data"]["status"] == "sent"

    history = client.get(
        f"/api/v1/chat/conversations/{conversation_key}/messages", headers=as_pro,
    ).json()
    assert [m["text"] for m in history["items"]] == ["over the socket"]


def test_bad_cursor_is_a_validation_error(client, as_client, conversation_key):
    resp = client.get(
        f"/api/v1/chat/conversations/{conversation_key}/messages",
        params={"cursor": "%%%not-a-cursor"},
        headers=as_client,
    )

    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_request_id_is_echoed_or_generated(client):
    echoed = client.get("/healthz", headers={"X-Request-ID": "req-123"})
    assert echoed.headers["X-Request-ID"] == "req-123"

    replaced = client.get("/healthz", headers={"X-Request-ID": "bad id with spaces"})
    assert replaced.headers["X-Request-ID"] != "bad id with spaces"
    assert len(replaced.headers["X-Request-ID"]) == 32


def test_metrics_count_http_requests(client, as_client, conversation_key):
    _send(client, conversation_key, as_client)
    client.get("/api/v1/chat/resolve/nobody", headers=as_client)

    http = client.get("/internal/metrics").json()["http"]

    assert http["by_status"] == {"2xx": 1, "4xx": 1}
    assert http["requests"] == 2


def test_open_or_create_with_admin_is_invalid_pairing(client, uow, as_client):
    uow.participants.add(make_participant("admin-1", UserRole.ADMIN))

    resp = client.post(
        "/api/v1/chat/conversations/open-or-create",
        json={"client_id": CLIENT_ID, "professional_id": "admin-1"},
        headers=as_client,
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_pairing"
