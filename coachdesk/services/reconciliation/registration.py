"""
Automatic student registration from inbound LINE messages.

Any text message from an unknown LINE user creates a student named after
the user's LINE display name, with zero credits. Repeat contact from a known
user is silent unless the welcome-back reply is enabled.
"""

from coachdesk.errors import GatewayError
from coachdesk.infrastructure.observability.logging import get_logger, log_batch_summary
from coachdesk.models.domain.reconciliation_domain import (
    RegistrationOutcome,
    RegistrationResult,
    Student,
)

logger = get_logger(__name__)

REGISTRATION_FAILED_TEXT = (
    "❌ Registration failed, please try again later or contact your coach."
)

REGISTRATION_INVITE_TEXT = """🏃‍♂️ Welcome to the Coach Management System!

Just send us any message and you'll be automatically registered in the system!

System features:
✅ Automatically create student profiles
✅ Course reminder notifications
✅ Attendance tracking

Please send any message to start registration, for example:
"Hello" or "Register"

After registration, coaches will schedule classes for you and send notifications."""


def welcome_text(student: Student) -> str:
    return f"""🎉 Welcome to the Coach Management System!

Your profile has been created:
• Name: {student.name}
• Student ID: {student.id}

Your coach will schedule classes for you and you will receive class reminder notifications.

If you need to update your name, phone, or other information, please contact your coach."""


def welcome_back_text(student: Student) -> str:
    return f"""Welcome back, {student.name}!

Your information:
• Remaining classes: {student.remaining_classes} sessions
• Total classes: {student.total_classes} sessions

Please contact your coach if you need to update your information."""


async def _reply(messaging, sender_id: str, text: str) -> bool:
    try:
        await messaging.push_message(sender_id, text)
    except GatewayError as e:
        logger.error("Could not reply to LINE user", sender_id=sender_id, error=str(e))
        return False
    return True


async def register_sender(
    store, messaging, sender_id: str, *, welcome_back: bool = False
) -> RegistrationResult:
    """
    Register a LINE user as a student if they are not one already.

    Failures to look up the profile or write the student are reported to the
    user with a generic failure reply and returned as a FAILED result.
    """
    try:
        existing = await store.get_student_by_line_id(sender_id)
        if existing is not None:
            return await _already_registered(messaging, existing, sender_id, welcome_back)

        profile = await messaging.get_profile(sender_id)
        name = (profile.display_name or "").strip() or sender_id
        student, created = await store.create_student(name, line_user_id=sender_id)
    except GatewayError as e:
        logger.error("Auto registration failed", sender_id=sender_id, error=str(e))
        reply_sent = await _reply(messaging, sender_id, REGISTRATION_FAILED_TEXT)
        return RegistrationResult(
            sender_id=sender_id,
            outcome=RegistrationOutcome.FAILED,
            reply_sent=reply_sent,
            error=str(e),
        )

    if not created:
        # A concurrent message from the same user registered them first
        return await _already_registered(messaging, student, sender_id, welcome_back)

    logger.info("Student auto-registered", student_id=student.id, sender_id=sender_id)
    reply_sent = await _reply(messaging, sender_id, welcome_text(student))
    return RegistrationResult(
        sender_id=sender_id,
        outcome=RegistrationOutcome.REGISTERED,
        student=student,
        reply_sent=reply_sent,
    )


async def _already_registered(
    messaging, student: Student, sender_id: str, welcome_back: bool
) -> RegistrationResult:
    reply_sent = False
    if welcome_back:
        reply_sent = await _reply(messaging, sender_id, welcome_back_text(student))
    return RegistrationResult(
        sender_id=sender_id,
        outcome=RegistrationOutcome.ALREADY_REGISTERED,
        student=student,
        reply_sent=reply_sent,
    )


def text_message_senders(payload: dict) -> list[str]:
    """User ids of every text message event in a LINE webhook body, in order."""
    senders = []
    for event in payload.get("events") or []:
        if event.get("type") != "message":
            continue
        if (event.get("message") or {}).get("type") != "text":
            continue
        user_id = (event.get("source") or {}).get("userId")
        if user_id:
            senders.append(user_id)
    return senders


async def handle_webhook_events(
    store, messaging, payload: dict, *, welcome_back: bool = False
) -> list[RegistrationResult]:
    """Run registration for each text message in a verified webhook body."""
    results = []
    for sender_id in text_message_senders(payload):
        results.append(
            await register_sender(store, messaging, sender_id, welcome_back=welcome_back)
        )

    log_batch_summary(
        "line_webhook",
        messages=len(results),
        registered=sum(1 for r in results if r.outcome is RegistrationOutcome.REGISTERED),
        failed=sum(1 for r in results if r.outcome is RegistrationOutcome.FAILED),
    )
    return results
