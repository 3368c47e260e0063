# core/validation.py
"""
Payload validation for the GiftGenie API

Every validator takes the decoded JSON body and returns a cleaned dict
(camelCase keys, defaults applied, unknown keys dropped) or raises
ValidationError carrying one entry per offending field.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from email_validator import validate_email, EmailNotValidError

from core.database_models import default_notification_preferences

logger = logging.getLogger(__name__)

REMINDER_STATUSES = ('active', 'sent', 'cancelled', 'snoozed')
OCCASION_TYPES = ('birthday', 'anniversary', 'holiday', 'graduation', 'wedding',
                  'baby_shower', 'housewarming', 'retirement', 'custom')
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 50
MIN_PASSWORD_LENGTH = 6
MAX_ADVANCE_DAYS = 365


class ValidationError(Exception):
    """Raised when a request payload fails validation"""

    def __init__(self, errors: List[Dict[str, str]], message: str = 'Validation failed'):
        super().__init__(message)
        self.errors = errors
        self.message = message


class _Collector:
    """Accumulates field errors so one response reports all of them"""

    def __init__(self):
        self.errors: List[Dict[str, str]] = []

    def add(self, field: str, message: str):
        self.errors.append({'field': field, 'message': message})

    def raise_if_any(self):
        if self.errors:
            raise ValidationError(self.errors)


def _require_mapping(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError([{'field': 'body', 'message': 'Expected a JSON object'}])
    return data


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a calendar date from API input

    Accepts date/datetime objects, 'YYYY-MM-DD' strings and full ISO 8601
    timestamps (the date part is kept).

    Returns:
        The parsed date, or None when value is empty

    Raises:
        ValueError: If the value cannot be interpreted as a date
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        return date.fromisoformat(value[:10])
    raise ValueError(f"Invalid date: {value!r}")


def _string(value: Any, field: str, errors: _Collector, required: bool = False,
            max_length: Optional[int] = None) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors.add(field, f"{field} is required")
        return None if value is None else ''
    if not isinstance(value, str):
        errors.add(field, f"{field} must be a string")
        return None
    value = value.strip()
    if max_length and len(value) > max_length:
        errors.add(field, f"{field} must be at most {max_length} characters")
    return value


def _string_list(value: Any, field: str, errors: _Collector, required: bool = False) -> Optional[List[str]]:
    if value is None:
        if required:
            errors.add(field, f"{field} is required")
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        errors.add(field, f"{field} must be a list of strings")
        return None
    return [item.strip() for item in value if item.strip()]


def _boolean(value: Any, field: str, errors: _Collector) -> Optional[bool]:
    if value is None:
        return None
    if not isinstance(value, bool):
        errors.add(field, f"{field} must be a boolean")
        return None
    return value


def _integer(value: Any, field: str, errors: _Collector, minimum: Optional[int] = None,
             maximum: Optional[int] = None) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.add(field, f"{field} must be a number")
        return None
    value = int(round(value))
    if minimum is not None and value < minimum:
        errors.add(field, f"{field} must be at least {minimum}")
    if maximum is not None and value > maximum:
        errors.add(field, f"{field} must be at most {maximum}")
    return value


def _date(value: Any, field: str, errors: _Collector, required: bool = False) -> Optional[date]:
    try:
        parsed = parse_date(value)
    except (TypeError, ValueError):
        errors.add(field, f"{field} must be a date (YYYY-MM-DD)")
        return None
    if parsed is None and required:
        errors.add(field, f"{field} is required")
    return parsed


def _email_address(address: Any, field: str, errors: _Collector) -> str:
    if not address or not isinstance(address, str):
        errors.add(field, 'Email address required when email notifications enabled')
        return ''
    try:
        return validate_email(address.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        errors.add(field, f"Invalid email address: {str(e)}")
        return address


def _notification_channels(value: Any, field: str, errors: _Collector) -> Dict[str, Any]:
    """Validate the email/sms/push block shared by preferences and reminders"""
    channels = default_notification_preferences()
    channels.pop('defaultAdvanceDays')
    if value is None:
        return channels
    if not isinstance(value, dict):
        errors.add(field, f"{field} must be an object")
        return channels

    email = value.get('email') or {}
    if isinstance(email, dict):
        enabled = _boolean(email.get('enabled', False), f"{field}.email.enabled", errors) or False
        address = email.get('address') or ''
        if enabled:
            address = _email_address(address, f"{field}.email.address", errors)
        channels['email'] = {'enabled': enabled, 'address': address}
    else:
        errors.add(f"{field}.email", 'email settings must be an object')

    sms = value.get('sms') or {}
    if isinstance(sms, dict):
        enabled = _boolean(sms.get('enabled', False), f"{field}.sms.enabled", errors) or False
        phone = sms.get('phoneNumber') or ''
        if enabled and not phone:
            errors.add(f"{field}.sms.phoneNumber", 'Phone number required when SMS notifications enabled')
        channels['sms'] = {'enabled': enabled, 'phoneNumber': phone}
    else:
        errors.add(f"{field}.sms", 'sms settings must be an object')

    push = value.get('push') or {}
    if isinstance(push, dict):
        channels['push'] = {'enabled': _boolean(push.get('enabled', False), f"{field}.push.enabled", errors) or False}
    else:
        errors.add(f"{field}.push", 'push settings must be an object')

    return channels


def validate_registration(data: Any) -> Dict[str, str]:
    data = _require_mapping(data)
    errors = _Collector()
    username = _string(data.get('username'), 'username', errors, required=True,
                       max_length=MAX_USERNAME_LENGTH)
    if username and len(username) < MIN_USERNAME_LENGTH:
        errors.add('username', f"username must be at least {MIN_USERNAME_LENGTH} characters")
    password = data.get('password')
    if not isinstance(password, str) or not password:
        errors.add('password', 'password is required')
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors.add('password', f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    errors.raise_if_any()
    return {'username': username, 'password': password}


FRIEND_DEFAULTS = {
    'category': 'friend',
    'notes': None,
    'country': 'United States',
    'currency': 'USD',
    'profilePicture': None,
    'gender': None,
    'ageRange': None,
    'theme': 'default',
}


def validate_friend(data: Any, partial: bool = False) -> Dict[str, Any]:
    """
    Validate a friend payload

    Args:
        data: Decoded JSON body
        partial: When True only the supplied fields are validated and returned

    Returns:
        Cleaned friend fields
    """
    data = _require_mapping(data)
    errors = _Collector()
    cleaned: Dict[str, Any] = {}

    if not partial or 'name' in data:
        cleaned['name'] = _string(data.get('name'), 'name', errors, required=True, max_length=120)
    if not partial or 'personalityTraits' in data:
        traits = _string_list(data.get('personalityTraits'), 'personalityTraits', errors, required=True)
        if traits is not None and not traits:
            errors.add('personalityTraits', 'At least one personality trait is required')
        cleaned['personalityTraits'] = traits
    if not partial or 'interests' in data:
        cleaned['interests'] = _string_list(data.get('interests'), 'interests', errors, required=True)

    for field, default in FRIEND_DEFAULTS.items():
        if field in data:
            max_length = None if field in ('notes', 'profilePicture') else 100
            value = _string(data.get(field), field, errors, max_length=max_length)
            cleaned[field] = value or default
        elif not partial:
            cleaned[field] = default

    if cleaned.get('currency'):
        cleaned['currency'] = cleaned['currency'].upper()

    errors.raise_if_any()
    return cleaned


def validate_saved_gift(data: Any) -> Dict[str, Any]:
    data = _require_mapping(data)
    errors = _Collector()
    friend_id = _string(data.get('friendId'), 'friendId', errors, required=True)

    gift = data.get('giftData')
    gift_data: Dict[str, Any] = {}
    if not isinstance(gift, dict):
        errors.add('giftData', 'giftData is required')
    else:
        gift_data['name'] = _string(gift.get('name'), 'giftData.name', errors, required=True)
        gift_data['description'] = _string(gift.get('description'), 'giftData.description', errors) or ''
        gift_data['price'] = str(gift.get('price') or '')
        gift_data['matchPercentage'] = _integer(gift.get('matchPercentage', 0), 'giftData.matchPercentage',
                                                errors, minimum=0, maximum=100) or 0
        gift_data['image'] = _string(gift.get('image'), 'giftData.image', errors) or ''
        shops = gift.get('shops') or []
        if not isinstance(shops, list) or not all(isinstance(shop, dict) for shop in shops):
            errors.add('giftData.shops', 'shops must be a list of objects')
            shops = []
        gift_data['shops'] = [{
            'name': str(shop.get('name', '')),
            'price': str(shop.get('price', '')),
            'inStock': bool(shop.get('inStock', True)),
            'url': str(shop.get('url', '')),
        } for shop in shops]
        if gift.get('matchingTraits') is not None:
            gift_data['matchingTraits'] = _string_list(gift.get('matchingTraits'), 'giftData.matchingTraits', errors) or []

    errors.raise_if_any()
    return {'friendId': friend_id, 'giftData': gift_data}


def validate_notification_preferences(data: Any) -> Dict[str, Any]:
    data = _require_mapping(data)
    errors = _Collector()
    preferences = _notification_channels(data, 'notificationPreferences', errors)
    advance = _integer(data.get('defaultAdvanceDays', 7), 'defaultAdvanceDays', errors,
                       minimum=0, maximum=MAX_ADVANCE_DAYS)
    preferences['defaultAdvanceDays'] = 7 if advance is None else advance
    errors.raise_if_any()
    return preferences


def validate_reminder(data: Any, partial: bool = False) -> Dict[str, Any]:
    """
    Validate a gift reminder payload

    A missing reminderDate is derived from occasionDate - advanceDays when
    both are known from the payload.

    Args:
        data: Decoded JSON body
        partial: When True only the supplied fields are validated and returned

    Returns:
        Cleaned reminder fields with date values as datetime.date
    """
    data = _require_mapping(data)
    errors = _Collector()
    cleaned: Dict[str, Any] = {}

    def wanted(field):
        return not partial or field in data

    if wanted('friendId'):
        cleaned['friendId'] = _string(data.get('friendId'), 'friendId', errors, required=True)
    if wanted('title'):
        cleaned['title'] = _string(data.get('title'), 'title', errors, required=True, max_length=200)
    if wanted('occasionDate'):
        cleaned['occasionDate'] = _date(data.get('occasionDate'), 'occasionDate', errors, required=True)
    # null means "derive from occasionDate - advanceDays"
    if data.get('reminderDate') not in (None, ''):
        cleaned['reminderDate'] = _date(data.get('reminderDate'), 'reminderDate', errors, required=True)
    if wanted('occasionType'):
        occasion = _string(data.get('occasionType'), 'occasionType', errors) or 'birthday'
        if occasion not in OCCASION_TYPES:
            errors.add('occasionType', f"occasionType must be one of: {', '.join(OCCASION_TYPES)}")
        cleaned['occasionType'] = occasion
    if 'notificationMethods' in data:
        cleaned['notificationMethods'] = _notification_channels(data.get('notificationMethods'),
                                                                'notificationMethods', errors)
    if 'message' in data:
        cleaned['message'] = _string(data.get('message'), 'message', errors, max_length=1000)
    if 'advanceDays' in data:
        cleaned['advanceDays'] = _integer(data.get('advanceDays'), 'advanceDays', errors,
                                          minimum=0, maximum=MAX_ADVANCE_DAYS)
    if 'status' in data or not partial:
        status = data.get('status', 'active')
        if status not in REMINDER_STATUSES:
            errors.add('status', f"status must be one of: {', '.join(REMINDER_STATUSES)}")
        cleaned['status'] = status
    if 'isRecurring' in data or not partial:
        cleaned['isRecurring'] = bool(_boolean(data.get('isRecurring', False), 'isRecurring', errors))
    if 'savedGiftId' in data:
        cleaned['savedGiftId'] = _string(data.get('savedGiftId'), 'savedGiftId', errors) or None
    if 'snoozeUntil' in data:
        cleaned['snoozeUntil'] = _date(data.get('snoozeUntil'), 'snoozeUntil', errors)
    if not partial and cleaned.get('status') == 'snoozed' and cleaned.get('snoozeUntil') is None:
        errors.add('snoozeUntil', 'snoozeUntil is required when status is snoozed')

    errors.raise_if_any()

    if not partial and cleaned.get('reminderDate') is None and cleaned.get('occasionDate'):
        advance = cleaned.get('advanceDays')
        cleaned['reminderDate'] = cleaned['occasionDate'] - timedelta(days=7 if advance is None else advance)
    return cleaned


def validate_analytics_event(data: Any) -> Dict[str, Any]:
    data = _require_mapping(data)
    errors = _Collector()
    cleaned = {
        'eventType': _string(data.get('eventType'), 'eventType', errors, required=True, max_length=100),
        'sessionId': _string(data.get('sessionId'), 'sessionId', errors, max_length=128),
        'userAgent': _string(data.get('userAgent'), 'userAgent', errors),
        'ipAddress': _string(data.get('ipAddress'), 'ipAddress', errors, max_length=64),
    }
    event_data = data.get('eventData')
    if event_data is not None and not isinstance(event_data, dict):
        errors.add('eventData', 'eventData must be an object')
    cleaned['eventData'] = event_data or {}
    errors.raise_if_any()
    return cleaned


def validate_feedback(data: Any) -> Dict[str, Any]:
    data = _require_mapping(data)
    errors = _Collector()
    recommendation = data.get('recommendationData')
    if recommendation is not None and not isinstance(recommendation, dict):
        errors.add('recommendationData', 'recommendationData must be an object')
        recommendation = None

    gift_name = data.get('giftName') or (recommendation or {}).get('giftName')
    rating = None
    if data.get('rating') is None:
        errors.add('rating', 'rating is required')
    else:
        rating = _integer(data.get('rating'), 'rating', errors)
    if rating is not None and rating not in (-1, 1, 2, 3, 4, 5):
        errors.add('rating', 'rating must be -1, or between 1 and 5')

    cleaned = {
        'friendId': _string(data.get('friendId'), 'friendId', errors),
        'giftName': _string(gift_name, 'giftName', errors, required=True, max_length=255),
        'recommendationData': recommendation or {},
        'rating': rating,
        'feedback': _string(data.get('feedback'), 'feedback', errors),
        'helpful': _boolean(data.get('helpful'), 'helpful', errors),
        'purchased': bool(_boolean(data.get('purchased', False), 'purchased', errors)),
    }
    errors.raise_if_any()
    return cleaned


def validate_performance_metric(data: Any) -> Dict[str, Any]:
    data = _require_mapping(data)
    errors = _Collector()
    response_time = None
    if data.get('responseTime') is None:
        errors.add('responseTime', 'responseTime is required')
    else:
        response_time = _integer(data.get('responseTime'), 'responseTime', errors, minimum=0)
    metadata = data.get('metadata')
    if metadata is not None and not isinstance(metadata, dict):
        errors.add('metadata', 'metadata must be an object')
    success = _boolean(data.get('success', True), 'success', errors)
    cleaned = {
        'operation': _string(data.get('operation'), 'operation', errors, required=True, max_length=100),
        'responseTime': response_time,
        'success': True if success is None else success,
        'errorMessage': _string(data.get('errorMessage'), 'errorMessage', errors),
        'metadata': metadata or {},
    }
    errors.raise_if_any()
    return cleaned


def validate_blog_post(data: Any, partial: bool = False) -> Dict[str, Any]:
    data = _require_mapping(data)
    errors = _Collector()
    cleaned: Dict[str, Any] = {}
    if not partial or 'title' in data:
        cleaned['title'] = _string(data.get('title'), 'title', errors, required=True, max_length=255)
    if not partial or 'content' in data:
        cleaned['content'] = _string(data.get('content'), 'content', errors, required=True)
    if 'excerpt' in data:
        cleaned['excerpt'] = _string(data.get('excerpt'), 'excerpt', errors, max_length=500)
    if 'published' in data or not partial:
        published = _boolean(data.get('published', True), 'published', errors)
        cleaned['published'] = True if published is None else published
    errors.raise_if_any()
    return cleaned
