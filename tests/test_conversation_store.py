"""
Conversation store and org isolation tests.

Verifies that:
- Conversations from org A are not visible when listing org B
- Only live conversations are matched to inbound replies
- Redelivered platform messages are stored once
- Conditional updates detect concurrent writers
- Turn commits land whole or not at all
- Auth middleware verifies the JWT before trusting its org claim
"""

import sqlite3
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from adapters.local.auth_middleware import AuthContext, AuthError, JWTVerifier, extract_auth
from candor.config.settings import Settings
from candor.errors.exceptions import ConcurrentModification, ConversationNotFound
from candor.models.conversation import Conversation, ConversationMessage, ConversationStatus
from candor.models.message import ChatPlatform

AUTH_SECRET = "local-idp-signing-key-for-tests-0123456789"
VERIFIER = JWTVerifier(secret=AUTH_SECRET)


def _conversation(
    org_id: str = "org-a",
    channel_id: str = "C1",
    status: ConversationStatus = ConversationStatus.INITIATED,
    platform: ChatPlatform = ChatPlatform.SLACK,
    **kwargs,
) -> Conversation:
    return Conversation(
        conversation_id=str(uuid.uuid4()),
        org_id=org_id,
        interaction_type="peer_review",
        platform=platform,
        channel_id=channel_id,
        status=status,
        **kwargs,
    )


def _in_an_hour() -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=1)


def _make_jwt(claims: dict, secret: str = AUTH_SECRET) -> str:
    return jwt.encode({"exp": _in_an_hour(), **claims}, secret, algorithm="HS256")


# --- Org isolation ---


async def test_list_conversations_scoped_to_org(store):
    a1 = await store.create_conversation(_conversation("org-a"))
    a2 = await store.create_conversation(_conversation("org-a", channel_id="C2"))
    b1 = await store.create_conversation(_conversation("org-b"))

    ids_a = {c.conversation_id for c in await store.list_conversations("org-a")}
    ids_b = {c.conversation_id for c in await store.list_conversations("org-b")}

    assert ids_a == {a1.conversation_id, a2.conversation_id}
    assert ids_b == {b1.conversation_id}
    assert await store.list_conversations("org-c") == []


async def test_list_conversations_by_status(store):
    await store.create_conversation(_conversation(status=ConversationStatus.SCHEDULED))
    live = await store.create_conversation(_conversation(status=ConversationStatus.IN_PROGRESS))

    result = await store.list_conversations("org-a", status=ConversationStatus.IN_PROGRESS)

    assert [c.conversation_id for c in result] == [live.conversation_id]


async def test_roundtrip_preserves_fields(store):
    initiated = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)
    created = await store.create_conversation(_conversation(
        reviewer_id="U1", subject_id="U2", subject_name="Sam",
        thread_id="1700000000.000100", theme_index=2, initiated_at=initiated,
        platform=ChatPlatform.GOOGLE_CHAT,
    ))

    stored = await store.get_conversation(created.conversation_id)

    assert stored == created
    assert stored.initiated_at == initiated


async def test_get_unknown_conversation(store):
    assert await store.get_conversation("missing") is None


# --- Active lookup ---


async def test_find_active_ignores_scheduled_and_terminal(store):
    for status in (
        ConversationStatus.SCHEDULED,
        ConversationStatus.CLOSED,
        ConversationStatus.EXPIRED,
    ):
        await store.create_conversation(_conversation(status=status))

    assert await store.find_active_conversation(ChatPlatform.SLACK, "C1") is None


async def test_find_active_matches_platform_and_channel(store):
    slack = await store.create_conversation(_conversation(status=ConversationStatus.IN_PROGRESS))
    await store.create_conversation(_conversation(
        status=ConversationStatus.IN_PROGRESS, platform=ChatPlatform.TEAMS,
    ))

    found = await store.find_active_conversation(ChatPlatform.SLACK, "C1")

    assert found.conversation_id == slack.conversation_id
    assert await store.find_active_conversation(ChatPlatform.SLACK, "C2") is None


async def test_find_active_prefers_most_recent(store):
    now = datetime.now(timezone.utc)
    await store.create_conversation(_conversation(initiated_at=now - timedelta(days=2)))
    newer = await store.create_conversation(_conversation(initiated_at=now))

    found = await store.find_active_conversation(ChatPlatform.SLACK, "C1")

    assert found.conversation_id == newer.conversation_id


async def test_closing_conversation_still_active(store):
    closing = await store.create_conversation(_conversation(status=ConversationStatus.CLOSING))
    found = await store.find_active_conversation(ChatPlatform.SLACK, "C1")
    assert found.conversation_id == closing.conversation_id


# --- Transcript ---


async def test_transcript_in_insertion_order(store):
    c = await store.create_conversation(_conversation())

    await store.append_message(c.conversation_id, "assistant", "How was the sprint?")
    await store.append_message(c.conversation_id, "user", "Busy", platform_message_id="m1")
    await store.append_message(c.conversation_id, "assistant", "What made it busy?")

    transcript = await store.get_transcript(c.conversation_id)

    assert [(m.role, m.content) for m in transcript] == [
        ("assistant", "How was the sprint?"),
        ("user", "Busy"),
        ("assistant", "What made it busy?"),
    ]
    assert transcript[1].platform_message_id == "m1"
    assert transcript[0].platform_message_id is None


async def test_redelivered_message_stored_once(store):
    c = await store.create_conversation(_conversation())

    await store.append_message(c.conversation_id, "user", "Busy", platform_message_id="m1")
    await store.append_message(c.conversation_id, "user", "Busy", platform_message_id="m1")

    assert len(await store.get_transcript(c.conversation_id)) == 1
    assert await store.has_message(c.conversation_id, "m1")
    assert not await store.has_message(c.conversation_id, "m2")


async def test_same_platform_id_in_different_conversations(store):
    first = await store.create_conversation(_conversation())
    second = await store.create_conversation(_conversation("org-b"))

    await store.append_message(first.conversation_id, "user", "A", platform_message_id="m1")
    await store.append_message(second.conversation_id, "user", "B", platform_message_id="m1")

    assert [m.content for m in await store.get_transcript(first.conversation_id)] == ["A"]
    assert [m.content for m in await store.get_transcript(second.conversation_id)] == ["B"]


async def test_append_to_unknown_conversation(store):
    with pytest.raises(ConversationNotFound):
        await store.append_message("missing", "user", "hello")


# --- Conditional updates ---


async def test_update_status_applies_fields(store):
    c = await store.create_conversation(_conversation())
    closed_at = datetime(2025, 3, 2, tzinfo=timezone.utc)

    await store.update_status(
        c.conversation_id, ConversationStatus.CLOSED,
        message_count=5, theme_index=3, closed_at=closed_at, expected_count=0,
    )

    stored = await store.get_conversation(c.conversation_id)
    assert stored.status == ConversationStatus.CLOSED
    assert stored.message_count == 5
    assert stored.theme_index == 3
    assert stored.closed_at == closed_at


async def test_update_with_stale_count_rejected(store):
    c = await store.create_conversation(_conversation())
    await store.update_status(
        c.conversation_id, ConversationStatus.IN_PROGRESS, message_count=1, expected_count=0,
    )

    with pytest.raises(ConcurrentModification):
        await store.update_status(
            c.conversation_id, ConversationStatus.IN_PROGRESS, message_count=1, expected_count=0,
        )

    assert (await store.get_conversation(c.conversation_id)).message_count == 1


async def test_update_unknown_conversation(store):
    with pytest.raises(ConversationNotFound):
        await store.update_status("missing", ConversationStatus.EXPIRED)


# --- Turn commits ---


async def test_commit_turn_writes_messages_and_status(store):
    c = await store.create_conversation(_conversation())

    await store.commit_turn(
        c.conversation_id,
        [
            ConversationMessage(c.conversation_id, "user", "Busy", "m1"),
            ConversationMessage(c.conversation_id, "assistant", "What made it busy?", "out-1"),
        ],
        ConversationStatus.IN_PROGRESS,
        message_count=1,
        expected_count=0,
    )

    stored = await store.get_conversation(c.conversation_id)
    assert stored.status == ConversationStatus.IN_PROGRESS
    assert stored.message_count == 1
    assert [m.platform_message_id for m in await store.get_transcript(c.conversation_id)] == [
        "m1", "out-1",
    ]


async def test_commit_turn_with_stale_count_writes_nothing(store):
    c = await store.create_conversation(_conversation(message_count=2))

    with pytest.raises(ConcurrentModification):
        await store.commit_turn(
            c.conversation_id,
            [ConversationMessage(c.conversation_id, "user", "late", "m9")],
            ConversationStatus.IN_PROGRESS,
            message_count=2,
            expected_count=1,
        )

    assert await store.get_transcript(c.conversation_id) == []


async def test_commit_turn_rolls_back_status_when_insert_fails(store):
    c = await store.create_conversation(_conversation())
    broken = ConversationMessage(c.conversation_id, "user", None, "m1")

    with pytest.raises(sqlite3.IntegrityError):
        await store.commit_turn(
            c.conversation_id,
            [broken],
            ConversationStatus.CLOSED,
            message_count=1,
            expected_count=0,
        )

    stored = await store.get_conversation(c.conversation_id)
    assert stored.status == ConversationStatus.INITIATED
    assert stored.message_count == 0
    assert stored.closed_at is None
    assert await store.get_transcript(c.conversation_id) == []


# --- Auth middleware ---


def test_extract_auth_valid():
    token = _make_jwt({"sub": "user-123", "custom:org_id": "org-a", "email": "a@example.com"})

    ctx = extract_auth({"Authorization": f"Bearer {token}"}, VERIFIER)

    assert ctx == AuthContext(user_id="user-123", org_id="org-a", email="a@example.com")


def test_extract_auth_missing_header():
    with pytest.raises(AuthError) as exc_info:
        extract_auth({}, VERIFIER)
    assert exc_info.value.status == 401


def test_extract_auth_not_a_jwt():
    with pytest.raises(AuthError):
        extract_auth({"Authorization": "Bearer not-a-token"}, VERIFIER)


def test_extract_auth_rejects_forged_signature():
    forged = _make_jwt(
        {"sub": "user-123", "custom:org_id": "org-b"},
        secret="attacker-controlled-signing-key-0123456789",
    )

    with pytest.raises(AuthError) as exc_info:
        extract_auth({"Authorization": f"Bearer {forged}"}, VERIFIER)

    assert exc_info.value.status == 401


def test_extract_auth_rejects_unsigned_token():
    unsigned = jwt.encode(
        {"sub": "user-123", "custom:org_id": "org-a", "exp": _in_an_hour()}, None, algorithm="none"
    )

    with pytest.raises(AuthError):
        extract_auth({"Authorization": f"Bearer {unsigned}"}, VERIFIER)


def test_extract_auth_rejects_expired_token():
    token = _make_jwt({
        "sub": "user-123", "custom:org_id": "org-a",
        "exp": datetime.now(timezone.utc) - timedelta(minutes=5),
    })

    with pytest.raises(AuthError, match="expired"):
        extract_auth({"Authorization": f"Bearer {token}"}, VERIFIER)


def test_extract_auth_checks_audience_when_configured():
    verifier = JWTVerifier(secret=AUTH_SECRET, audience="candor-web")
    token = _make_jwt({"sub": "user-123", "custom:org_id": "org-a", "aud": "other-app"})

    with pytest.raises(AuthError):
        extract_auth({"Authorization": f"Bearer {token}"}, verifier)


def test_extract_auth_unconfigured_is_unavailable():
    token = _make_jwt({"sub": "user-123", "custom:org_id": "org-a"})

    with pytest.raises(AuthError) as exc_info:
        extract_auth({"Authorization": f"Bearer {token}"}, None)

    assert exc_info.value.status == 503


def test_verifier_from_settings():
    assert JWTVerifier.from_settings(Settings()) is None
    assert JWTVerifier.from_settings(Settings(auth_jwt_secret=AUTH_SECRET)).secret == AUTH_SECRET


def test_extract_auth_missing_org_is_forbidden():
    token = _make_jwt({"sub": "user-123"})

    with pytest.raises(AuthError) as exc_info:
        extract_auth({"Authorization": f"Bearer {token}"}, VERIFIER)

    assert exc_info.value.status == 403


def test_extract_auth_missing_sub():
    token = _make_jwt({"custom:org_id": "org-a"})

    with pytest.raises(AuthError) as exc_info:
        extract_auth({"Authorization": f"Bearer {token}"}, VERIFIER)

    assert exc_info.value.status == 401
