"""
Reconciliation engine: calendar events in, class records, attendance,
credits and reminders out.
"""

from .attendance import auto_confirm_recent_attendance, confirm_attendance
from .notifications import dispatch_class_reminders, reminder_text
from .record_creation import create_class_records, match_student
from .registration import (
    REGISTRATION_INVITE_TEXT,
    handle_webhook_events,
    register_sender,
)

__all__ = [
    "auto_confirm_recent_attendance",
    "confirm_attendance",
    "create_class_records",
    "dispatch_class_reminders",
    "handle_webhook_events",
    "match_student",
    "register_sender",
    "reminder_text",
    "REGISTRATION_INVITE_TEXT",
]
