# api/reminders.py
"""
Gift reminder endpoints
"""

from datetime import timedelta

from flask import Blueprint, request, jsonify, g
import logging

from core.storage import get_storage
from core.validation import ValidationError, parse_date, validate_reminder
from middleware.security import require_admin, require_auth
from services.reminders import get_reminder_service

reminders_bp = Blueprint('reminders', __name__)
logger = logging.getLogger(__name__)


def _apply_user_defaults(data, raw, preferences):
    """Fill notification channels and advance days from the user's preferences"""
    preferences = preferences or {}
    if 'notificationMethods' not in raw:
        data['notificationMethods'] = {
            channel: dict(preferences.get(channel) or {}) for channel in ('email', 'sms', 'push')
        }
    if raw.get('advanceDays') is None:
        data['advanceDays'] = preferences.get('defaultAdvanceDays', 7)
        if raw.get('reminderDate') is None:
            data['reminderDate'] = data['occasionDate'] - timedelta(days=data['advanceDays'])
    return data


def _gift_for_friend(storage, gift_id, friend_id, owner_id):
    gift = storage.get_saved_gift(gift_id, owner_id)
    return gift if gift and gift['friendId'] == friend_id else None


@reminders_bp.route('/api/reminders', methods=['GET'])
@require_auth
def list_reminders():
    try:
        return jsonify(get_storage().get_reminders(g.user['id']))
    except Exception as e:
        logger.error(f"Failed to fetch reminders: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch reminders'}), 500


@reminders_bp.route('/api/reminders', methods=['POST'])
@require_auth
def create_reminder():
    raw = request.get_json(silent=True)
    try:
        data = validate_reminder(raw)
    except ValidationError as e:
        return jsonify({'error': 'Invalid reminder data', 'errors': e.errors}), 400

    storage = get_storage()
    owner_id = g.user['id']
    try:
        if not storage.get_friend(data['friendId'], owner_id):
            return jsonify({'error': 'Friend not found'}), 404
        if data.get('savedGiftId') and not _gift_for_friend(
                storage, data['savedGiftId'], data['friendId'], owner_id):
            return jsonify({'error': 'Saved gift not found'}), 404
        user = storage.get_user(owner_id)
        data = _apply_user_defaults(data, raw, user.get('notificationPreferences'))
        reminder = storage.create_reminder(data, owner_id)
    except Exception as e:
        logger.error(f"Failed to create reminder: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to create reminder'}), 500

    logger.info(f"Created reminder {reminder['id']} for {reminder['reminderDate']}")
    return jsonify(reminder), 201


@reminders_bp.route('/api/reminders/<reminder_id>', methods=['GET'])
@require_auth
def get_reminder(reminder_id):
    reminder = get_storage().get_reminder(reminder_id, g.user['id'])
    if not reminder:
        return jsonify({'error': 'Reminder not found'}), 404
    return jsonify(reminder)


@reminders_bp.route('/api/reminders/<reminder_id>', methods=['PUT'])
@require_auth
def update_reminder(reminder_id):
    raw = request.get_json(silent=True)
    try:
        updates = validate_reminder(raw, partial=True)
    except ValidationError as e:
        return jsonify({'error': 'Invalid reminder data', 'errors': e.errors}), 400

    storage = get_storage()
    owner_id = g.user['id']
    existing = storage.get_reminder(reminder_id, owner_id)
    if not existing:
        return jsonify({'error': 'Reminder not found'}), 404

    if 'friendId' in updates and not storage.get_friend(updates['friendId'], owner_id):
        return jsonify({'error': 'Friend not found'}), 404

    friend_id = updates.get('friendId', existing['friendId'])
    if updates.get('savedGiftId') and not _gift_for_friend(storage, updates['savedGiftId'], friend_id, owner_id):
        return jsonify({'error': 'Saved gift not found'}), 404

    status = updates.get('status', existing['status'])
    snooze_until = updates['snoozeUntil'] if 'snoozeUntil' in updates else existing.get('snoozeUntil')
    if status == 'snoozed' and not snooze_until:
        return jsonify({'error': 'Invalid reminder data', 'errors': [
            {'field': 'snoozeUntil', 'message': 'snoozeUntil is required when status is snoozed'}
        ]}), 400

    # Keep reminderDate in step with a moved occasion; an explicit null asks for the same
    if 'reminderDate' not in updates and ('occasionDate' in updates or 'advanceDays' in updates
                                          or 'reminderDate' in raw):
        occasion = updates.get('occasionDate') or parse_date(existing['occasionDate'])
        advance = updates.get('advanceDays')
        if advance is None:
            advance = existing.get('advanceDays') or 0
        updates['reminderDate'] = occasion - timedelta(days=advance)

    try:
        reminder = storage.update_reminder(reminder_id, updates, owner_id)
    except Exception as e:
        logger.error(f"Failed to update reminder {reminder_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to update reminder'}), 500
    return jsonify(reminder)


@reminders_bp.route('/api/reminders/<reminder_id>', methods=['DELETE'])
@require_auth
def delete_reminder(reminder_id):
    try:
        deleted = get_storage().delete_reminder(reminder_id, g.user['id'])
    except Exception as e:
        logger.error(f"Failed to delete reminder {reminder_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to delete reminder'}), 500

    if not deleted:
        return jsonify({'error': 'Reminder not found'}), 404
    return '', 204


@reminders_bp.route('/api/reminders/<reminder_id>/snooze', methods=['POST'])
@require_auth
def snooze_reminder(reminder_id):
    data = request.get_json(silent=True) or {}
    try:
        until = parse_date(data.get('until'))
    except (TypeError, ValueError):
        until = None
    if until is None:
        return jsonify({'error': 'A valid "until" date is required'}), 400

    reminder = get_storage().update_reminder(
        reminder_id, {'status': 'snoozed', 'snoozeUntil': until}, g.user['id'])
    if not reminder:
        return jsonify({'error': 'Reminder not found'}), 404
    return jsonify(reminder)


@reminders_bp.route('/api/reminders/<reminder_id>/cancel', methods=['POST'])
@require_auth
def cancel_reminder(reminder_id):
    reminder = get_storage().update_reminder(reminder_id, {'status': 'cancelled'}, g.user['id'])
    if not reminder:
        return jsonify({'error': 'Reminder not found'}), 404
    return jsonify(reminder)


@reminders_bp.route('/api/reminders/<reminder_id>/test', methods=['POST'])
@require_admin
def test_reminder(reminder_id):
    """Send one reminder immediately"""
    try:
        outcome = get_reminder_service().test_reminder(reminder_id)
    except Exception as e:
        logger.error(f"Test send of reminder {reminder_id} failed: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to send test reminder'}), 500

    if outcome is None:
        return jsonify({'error': 'Reminder not found'}), 404
    return jsonify({'result': outcome, 'reminder': get_storage().get_reminder(reminder_id)})


@reminders_bp.route('/api/reminders/check-due', methods=['POST'])
@require_admin
def check_due():
    try:
        summary = get_reminder_service().check_due_reminders()
    except Exception as e:
        logger.error(f"Reminder check failed: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to check reminders'}), 500
    return jsonify(summary)
