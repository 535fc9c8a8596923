"""
HTTP tests for auth, conversations and usage endpoints
"""
import logging
import uuid

import pytest

from auth_utils import create_jwt
from config.settings import settings
from crud.usage import UsageRepository, utc_today
from jobs.auto_title import auto_titler
from services.fallback_responses import FERTILIZER_RESPONSE


async def create_conversation(client, headers, **body):
    response = await client.post("/api/conversations", json=body, headers=headers)
    assert response.status_code == 201
    return response.json()["data"]["conversation"]


@pytest.mark.asyncio
async def test_phone_signup_flow(client, test_db, monkeypatch):
    monkeypatch.setattr(settings, "expose_dev_codes", True)
    sent = await client.post("/api/auth/send-code", json={"phone_number": "+959444555666"})
    assert sent.status_code == 200
    code = sent.json()["dev_code"]

    registered = await client.post(
        "/api/auth/register",
        json={"phone_number": "+959444555666", "name": "Daw Mya", "code": code},
    )
    assert registered.status_code == 200
    set_cookie = registered.headers["set-cookie"]
    assert "auth_token=" in set_cookie
    assert "httponly" in set_cookie.lower()

    user_id = registered.json()["user_id"]
    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {create_jwt(user_id)}"})
    assert me.status_code == 200
    assert me.json()["name"] == "Daw Mya"
    assert me.json()["subscription"]["tier"] == "free"


@pytest.mark.asyncio
async def test_send_code_keeps_code_private(client, test_db, monkeypatch, caplog):
    monkeypatch.setattr("services.auth_service.generate_verification_code", lambda: "482913")
    caplog.set_level(logging.INFO)

    sent = await client.post("/api/auth/send-code", json={"phone_number": "+959333333333"})

    assert sent.status_code == 200
    assert "dev_code" not in sent.json()
    assert "482913" not in caplog.text
    assert "+959333333333" in caplog.text


@pytest.mark.asyncio
async def test_register_with_bad_code(client, test_db):
    await client.post("/api/auth/send-code", json={"phone_number": "+959444555666"})

    response = await client.post(
        "/api/auth/register",
        json={"phone_number": "+959444555666", "name": "Daw Mya", "code": "abc"},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_endpoints_require_auth(client, test_db):
    assert (await client.get("/api/conversations")).status_code == 401
    assert (await client.get("/api/usage/limits")).status_code == 401
    bad = await client.get("/api/conversations", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_send_message_returns_reply_and_quota(client, auth_headers):
    conversation = await create_conversation(client, auth_headers)

    response = await client.post(
        f"/api/conversations/{conversation['id']}/messages",
        json={"text": "What fertilizer for rice?"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["data"]["user_message"]["content"] == "What fertilizer for rice?"
    assert body["data"]["assistant_message"]["content"] == FERTILIZER_RESPONSE
    assert body["data"]["reply_source"] == "local"
    assert body["data"]["remaining_messages"] == 19

    messages = await client.get(f"/api/conversations/{conversation['id']}/messages", headers=auth_headers)
    assert [m["role"] for m in messages.json()["data"]["messages"]] == ["user", "assistant"]

    limits = await client.get("/api/usage/limits", headers=auth_headers)
    assert limits.json()["data"]["remaining_messages"] == 19
    assert limits.json()["data"]["daily_limits"]["messages"] == 20


@pytest.mark.asyncio
async def test_send_over_quota_is_429(client, test_db, free_user, auth_headers):
    await UsageRepository(test_db).create_usage(free_user.id, utc_today(), message_count=20)
    await test_db.commit()
    conversation = await create_conversation(client, auth_headers)

    response = await client.post(
        f"/api/conversations/{conversation['id']}/messages",
        json={"text": "hello"},
        headers=auth_headers,
    )

    assert response.status_code == 429
    assert response.json()["error"] == "usage_limit_reached"
    assert response.json()["data"]["remaining_messages"] == 0


@pytest.mark.asyncio
async def test_send_validation_and_not_found(client, auth_headers):
    conversation = await create_conversation(client, auth_headers)

    blank = await client.post(
        f"/api/conversations/{conversation['id']}/messages", json={"text": "  "}, headers=auth_headers
    )
    malformed = await client.post("/api/conversations/nope/messages", json={"text": "hi"}, headers=auth_headers)
    unknown = await client.post(
        f"/api/conversations/{uuid.uuid4()}/messages", json={"text": "hi"}, headers=auth_headers
    )

    assert blank.status_code == 400
    assert malformed.status_code == 400
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_conversation_is_private(client, test_db, auth_headers, paid_user):
    conversation = await create_conversation(client, auth_headers)
    other_headers = {"Authorization": f"Bearer {create_jwt(paid_user.id)}"}

    response = await client.get(f"/api/conversations/{conversation['id']}/messages", headers=other_headers)

    assert response.status_code == 404
    listed = await client.get("/api/conversations", headers=other_headers)
    assert listed.json()["data"]["conversations"] == []


@pytest.mark.asyncio
async def test_first_message_auto_titles_conversation(client, auth_headers):
    conversation = await create_conversation(client, auth_headers)
    question = "My paddy leaves are turning yellow after the heavy rain this week"

    await client.post(
        f"/api/conversations/{conversation['id']}/messages", json={"text": question}, headers=auth_headers
    )
    task = auto_titler.pending(conversation["id"])
    assert task is not None
    await task

    response = await client.get(f"/api/conversations/{conversation['id']}/messages", headers=auth_headers)
    assert response.json()["data"]["conversation"]["title"] == question[:40] + "..."


@pytest.mark.asyncio
async def test_manual_rename_cancels_auto_title(client, auth_headers):
    conversation = await create_conversation(client, auth_headers)
    await client.post(
        f"/api/conversations/{conversation['id']}/messages", json={"text": "Rice seedlings wilting"},
        headers=auth_headers,
    )

    renamed = await client.patch(
        f"/api/conversations/{conversation['id']}", json={"title": "Seedbed notes"}, headers=auth_headers
    )

    assert renamed.status_code == 200
    assert renamed.json()["data"]["conversation"]["title"] == "Seedbed notes"
    assert auto_titler.pending(conversation["id"]) is None


@pytest.mark.asyncio
async def test_delete_conversation(client, auth_headers):
    conversation = await create_conversation(client, auth_headers)
    await client.post(
        f"/api/conversations/{conversation['id']}/messages", json={"text": "hello"}, headers=auth_headers
    )

    deleted = await client.delete(f"/api/conversations/{conversation['id']}", headers=auth_headers)
    assert deleted.status_code == 200

    response = await client.get(f"/api/conversations/{conversation['id']}/messages", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_conversation_language_defaults_to_user_preference(client, auth_headers):
    await client.patch("/api/auth/language", json={"language": "my"}, headers=auth_headers)

    conversation = await create_conversation(client, auth_headers)
    assert conversation["language"] == "my"

    unsupported = await client.post("/api/conversations", json={"language": "xx"}, headers=auth_headers)
    assert unsupported.status_code == 400


@pytest.mark.asyncio
async def test_security_headers(client, test_db):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.headers["x-frame-options"] == "DENY"
    assert response.headers["x-content-type-options"] == "nosniff"
