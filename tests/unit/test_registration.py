import pytest

from coachdesk.models.domain.reconciliation_domain import RegistrationOutcome
from coachdesk.services.line.messaging_client import LineProfile
from coachdesk.services.reconciliation import handle_webhook_events, register_sender
from coachdesk.services.reconciliation.registration import (
    REGISTRATION_FAILED_TEXT,
    text_message_senders,
)


def _text_event(user_id, text="Hello"):
    return {
        "type": "message",
        "message": {"type": "text", "text": text},
        "source": {"type": "user", "userId": user_id},
        "replyToken": "r",
    }


@pytest.mark.asyncio
async def test_unknown_sender_is_registered_with_zero_credits(store, messaging):
    messaging.profiles["U1"] = LineProfile(user_id="U1", display_name="Alice")

    result = await register_sender(store, messaging, "U1")

    assert result.outcome is RegistrationOutcome.REGISTERED
    assert result.student.name == "Alice"
    assert result.student.remaining_classes == 0
    assert result.student.total_classes == 0
    (welcome,) = messaging.texts_to("U1")
    assert "Name: Alice" in welcome
    assert f"Student ID: {result.student.id}" in welcome


@pytest.mark.asyncio
async def test_known_sender_is_silent_by_default(store, messaging):
    store.add_student("Alice", line_user_id="U1")

    result = await register_sender(store, messaging, "U1")

    assert result.outcome is RegistrationOutcome.ALREADY_REGISTERED
    assert messaging.pushed == []
    assert len(store.students) == 1


@pytest.mark.asyncio
async def test_known_sender_gets_welcome_back_when_enabled(store, messaging):
    store.add_student("Alice", line_user_id="U1", remaining=4, total=10)

    result = await register_sender(store, messaging, "U1", welcome_back=True)

    assert result.reply_sent is True
    (text,) = messaging.texts_to("U1")
    assert text.startswith("Welcome back, Alice!")
    assert "Remaining classes: 4 sessions" in text


@pytest.mark.asyncio
async def test_profile_failure_sends_failure_reply(store, messaging, gateway_error):
    messaging.profile_error = gateway_error

    result = await register_sender(store, messaging, "U1")

    assert result.outcome is RegistrationOutcome.FAILED
    assert messaging.texts_to("U1") == [REGISTRATION_FAILED_TEXT]
    assert store.students == {}


@pytest.mark.asyncio
async def test_store_failure_sends_failure_reply(store, messaging, gateway_error):
    store.fail("create_student", gateway_error)

    result = await register_sender(store, messaging, "U1")

    assert result.outcome is RegistrationOutcome.FAILED
    assert result.reply_sent is True
    assert messaging.texts_to("U1") == [REGISTRATION_FAILED_TEXT]


def test_only_text_messages_trigger_registration():
    payload = {
        "events": [
            _text_event("U1"),
            {"type": "follow", "source": {"userId": "U2"}},
            {"type": "message", "message": {"type": "sticker"}, "source": {"userId": "U3"}},
            _text_event("U4"),
        ]
    }

    assert text_message_senders(payload) == ["U1", "U4"]


@pytest.mark.asyncio
async def test_repeated_messages_register_once(store, messaging):
    payload = {"events": [_text_event("U1"), _text_event("U1", "again")]}

    results = await handle_webhook_events(store, messaging, payload)

    assert [r.outcome for r in results] == [
        RegistrationOutcome.REGISTERED,
        RegistrationOutcome.ALREADY_REGISTERED,
    ]
    assert len(store.students) == 1
