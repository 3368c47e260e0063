# services/reminders.py
"""
Gift reminder processing

Due reminders are delivered by email, then either marked sent or, for
recurring reminders, rolled forward to next year's occasion.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Any, Dict, Optional

from core.database_models import utcnow
from core.storage import Storage
from core.validation import parse_date
from services.email import EmailService

logger = logging.getLogger(__name__)

SENT = 'sent'
SKIPPED = 'skipped'
FAILED = 'failed'


@dataclass
class ReminderCheckSummary:
    """Outcome counts of one due-reminder sweep"""
    checked: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0

    def record(self, outcome: str):
        self.checked += 1
        setattr(self, outcome, getattr(self, outcome) + 1)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def add_one_year(value: date) -> date:
    """Same day next year; Feb 29 becomes Feb 28"""
    try:
        return value.replace(year=value.year + 1)
    except ValueError:
        return value.replace(year=value.year + 1, day=28)


def already_sent_today(reminder: Dict[str, Any], today: date) -> bool:
    last_sent = reminder.get('lastSentAt')
    if not last_sent:
        return False
    return parse_date(last_sent) >= today


def next_occurrence_updates(reminder: Dict[str, Any]) -> Dict[str, Any]:
    """Date fields that move a recurring reminder to next year's occasion"""
    next_occasion = add_one_year(parse_date(reminder['occasionDate']))
    advance_days = reminder.get('advanceDays')
    if advance_days is None:
        advance_days = 7
    return {
        'occasionDate': next_occasion,
        'reminderDate': next_occasion - timedelta(days=advance_days),
        'snoozeUntil': None,
    }


class ReminderService:
    """Sends due reminders through the email service"""

    def __init__(self, storage: Storage, email_service: EmailService):
        self.storage = storage
        self.email_service = email_service

    def process_reminder(self, reminder: Dict[str, Any], today: Optional[date] = None,
                         force: bool = False, raise_on_connection_error: bool = False) -> str:
        """
        Deliver one reminder and update its state

        Args:
            reminder: Reminder dict as returned by storage
            today: Reference day (defaults to today)
            force: Send even if the reminder already went out today
            raise_on_connection_error: Propagate SMTP connection errors
                so the caller can retry

        Returns:
            'sent', 'skipped' or 'failed'
        """
        today = today or date.today()

        if not force and already_sent_today(reminder, today):
            logger.info(f"Reminder {reminder['id']} already sent today, skipping")
            return SKIPPED

        email = (reminder.get('notificationMethods') or {}).get('email') or {}
        if not email.get('enabled') or not email.get('address'):
            logger.info(f"Reminder {reminder['id']} has no enabled email channel, skipping")
            return SKIPPED

        delivered = self.email_service.send_gift_reminder(
            email['address'],
            reminder.get('friendName') or 'Your friend',
            reminder.get('occasionType') or 'special occasion',
            parse_date(reminder['occasionDate']),
            reminder.get('message'),
            title=reminder.get('title'),
            raise_on_connection_error=raise_on_connection_error,
        )
        if not delivered:
            logger.warning(f"Reminder {reminder['id']} could not be delivered to {email['address']}")
            return FAILED

        updates = {'lastSentAt': utcnow(), 'status': SENT}
        if reminder.get('isRecurring'):
            updates.update(next_occurrence_updates(reminder))
            updates['status'] = 'active'
        self.storage.update_reminder(reminder['id'], updates)

        logger.info(f"Reminder {reminder['id']} sent to {email['address']}")
        return SENT

    def check_due_reminders(self, today: Optional[date] = None) -> Dict[str, int]:
        today = today or date.today()
        summary = ReminderCheckSummary()

        due = self.storage.get_due_reminders(today)
        logger.info(f"Found {len(due)} due reminders for {today.isoformat()}")

        for reminder in due:
            try:
                summary.record(self.process_reminder(reminder, today))
            except Exception as e:
                logger.error(f"Error processing reminder {reminder.get('id')}: {str(e)}")
                summary.record(FAILED)

        logger.info(f"Reminder check complete: {summary.to_dict()}")
        return summary.to_dict()

    def test_reminder(self, reminder_id: str) -> Optional[str]:
        """Process one reminder on demand; None when it does not exist"""
        reminder = self.storage.get_reminder(reminder_id)
        if reminder is None:
            return None
        return self.process_reminder(reminder, force=True)


def get_reminder_service() -> ReminderService:
    from core.storage import get_storage
    from services.email import get_email_service
    return ReminderService(get_storage(), get_email_service())
