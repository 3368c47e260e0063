# core/storage.py
"""
Storage layer for GiftGenie

One interface, two backends:
- MemStorage keeps records in process memory (development, tests and
  guest sessions)
- DatabaseStorage persists through SQLAlchemy (PostgreSQL in production)

StorageAdapter routes each call to the right backend. Signed-in users go to
the persistent backend. Guest visitors (owner ids prefixed with "guest-")
always go to an in-memory backend seeded with read-only demo friends, so
guests never touch the database and never see each other's data.

All backends return plain dicts in the JSON shape of the API.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_, text

from core.database_models import (
    db, User, Friend, SavedGift, GiftReminder, AnalyticsEvent,
    RecommendationFeedback, PerformanceMetric, BlogPost,
    default_notification_preferences, isoformat, new_id, utcnow
)

logger = logging.getLogger(__name__)

GUEST_PREFIX = 'guest-'


class StorageError(Exception):
    """Base exception for storage operations"""
    pass


class ReadOnlyRecordError(StorageError):
    """Raised when a caller tries to modify a shared demo record"""
    pass


def is_guest_owner(owner_id: Optional[str]) -> bool:
    return bool(owner_id) and owner_id.startswith(GUEST_PREFIX)


def public_user(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Strip credential fields from a stored user"""
    if user is None:
        return None
    return {k: v for k, v in user.items() if k not in ('passwordHash', 'passwordSalt')}


DEMO_FRIENDS = [
    {
        'id': 'demo-alex-johnson',
        'name': 'Alex Johnson',
        'personalityTraits': ['Creative', 'Outdoorsy', 'Thoughtful'],
        'interests': ['Art', 'Hiking', 'Photography'],
        'notes': 'Loves outdoor art sessions and nature photography',
        'country': 'United States',
        'currency': 'USD',
    },
    {
        'id': 'demo-sarah-chen',
        'name': 'Sarah Chen',
        'personalityTraits': ['Artistic', 'Tech-savvy', 'Innovative'],
        'interests': ['Digital Art', 'Gadgets', 'Gaming'],
        'notes': 'Always exploring new digital art tools and techniques',
        'country': 'Canada',
        'currency': 'CAD',
    },
    {
        'id': 'demo-mike-torres',
        'name': 'Mike Torres',
        'personalityTraits': ['Sporty', 'Social', 'Energetic'],
        'interests': ['Basketball', 'Fitness', 'Music'],
        'notes': 'Very active, loves team sports and working out',
        'country': 'United States',
        'currency': 'USD',
    },
]


class Storage(ABC):
    """
    Storage interface shared by every backend

    Friend, saved-gift and reminder operations take the caller's owner id
    and only see records that owner may access.
    """

    # Users
    @abstractmethod
    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def create_user(self, username: str, password_hash: str, password_salt: str,
                    is_admin: bool = False) -> Dict[str, Any]: ...

    @abstractmethod
    def update_user(self, user_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    # Friends
    @abstractmethod
    def get_friend(self, friend_id: str, owner_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def get_all_friends(self, owner_id: str) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def create_friend(self, data: Dict[str, Any], owner_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    def update_friend(self, friend_id: str, updates: Dict[str, Any], owner_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def delete_friend(self, friend_id: str, owner_id: str) -> bool: ...

    def get_unique_categories(self, owner_id: str) -> List[str]:
        categories = {friend.get('category') or 'friend' for friend in self.get_all_friends(owner_id)}
        return sorted(categories)

    # Saved gifts
    @abstractmethod
    def get_saved_gift(self, gift_id: str, owner_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def get_saved_gifts_by_friend(self, friend_id: str, owner_id: str) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def get_all_saved_gifts(self, owner_id: str) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def create_saved_gift(self, data: Dict[str, Any], owner_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    def delete_saved_gift(self, gift_id: str, owner_id: str) -> bool: ...

    # Reminders
    @abstractmethod
    def get_reminder(self, reminder_id: str, owner_id: Optional[str] = None) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def get_reminders(self, owner_id: str) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def get_reminders_by_friend(self, friend_id: str, owner_id: str) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def create_reminder(self, data: Dict[str, Any], owner_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    def update_reminder(self, reminder_id: str, updates: Dict[str, Any],
                        owner_id: Optional[str] = None) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def delete_reminder(self, reminder_id: str, owner_id: str) -> bool: ...

    @abstractmethod
    def get_due_reminders(self, today: date) -> List[Dict[str, Any]]: ...

    # Analytics
    @abstractmethod
    def create_analytics_event(self, data: Dict[str, Any], user_id: Optional[str]) -> Dict[str, Any]: ...

    @abstractmethod
    def get_analytics_events(self, limit: int = 100, user_id: Optional[str] = None) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def create_feedback(self, data: Dict[str, Any], user_id: Optional[str]) -> Dict[str, Any]: ...

    @abstractmethod
    def get_feedback(self, limit: int = 100, user_id: Optional[str] = None) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def create_performance_metric(self, data: Dict[str, Any], user_id: Optional[str]) -> Dict[str, Any]: ...

    @abstractmethod
    def get_performance_metrics(self, limit: int = 100, operation: Optional[str] = None,
                                user_id: Optional[str] = None) -> List[Dict[str, Any]]: ...

    # Blog
    @abstractmethod
    def get_all_blog_posts(self, include_unpublished: bool = False) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def get_blog_post(self, post_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def create_blog_post(self, data: Dict[str, Any], author_id: Optional[str]) -> Dict[str, Any]: ...

    @abstractmethod
    def update_blog_post(self, post_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def delete_blog_post(self, post_id: str) -> bool: ...

    def ping(self) -> bool:
        return True


def _export(record: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Deep-copy an in-memory record and render its dates as ISO strings"""
    if record is None:
        return None
    return {key: isoformat(value) for key, value in copy.deepcopy(record).items()}


class MemStorage(Storage):
    """In-memory backend guarded by a re-entrant lock"""

    def __init__(self, seed_demo: bool = False):
        self._lock = threading.RLock()
        self.users: Dict[str, Dict[str, Any]] = {}
        self.friends: Dict[str, Dict[str, Any]] = {}
        self.saved_gifts: Dict[str, Dict[str, Any]] = {}
        self.reminders: Dict[str, Dict[str, Any]] = {}
        self.analytics_events: List[Dict[str, Any]] = []
        self.feedback: List[Dict[str, Any]] = []
        self.performance_metrics: List[Dict[str, Any]] = []
        self.blog_posts: Dict[str, Dict[str, Any]] = {}
        if seed_demo:
            self._seed_demo_friends()

    def _seed_demo_friends(self):
        for demo in DEMO_FRIENDS:
            record = self._new_friend_record(demo, owner_id=None)
            record['id'] = demo['id']
            self.friends[record['id']] = record
        logger.debug(f"Seeded {len(DEMO_FRIENDS)} demo friends")

    @staticmethod
    def _new_friend_record(data: Dict[str, Any], owner_id: Optional[str]) -> Dict[str, Any]:
        return {
            'id': new_id(),
            'userId': owner_id,
            'name': data['name'],
            'personalityTraits': list(data.get('personalityTraits') or []),
            'interests': list(data.get('interests') or []),
            'category': data.get('category') or 'friend',
            'notes': data.get('notes'),
            'country': data.get('country') or 'United States',
            'currency': data.get('currency') or 'USD',
            'profilePicture': data.get('profilePicture'),
            'gender': data.get('gender'),
            'ageRange': data.get('ageRange'),
            'theme': data.get('theme') or 'default',
            'createdAt': utcnow(),
        }

    # Users

    def get_user(self, user_id):
        with self._lock:
            return _export(self.users.get(user_id))

    def get_user_by_username(self, username):
        with self._lock:
            for user in self.users.values():
                if user['username'] == username:
                    return _export(user)
        return None

    def create_user(self, username, password_hash, password_salt, is_admin=False):
        with self._lock:
            if any(user['username'] == username for user in self.users.values()):
                raise StorageError(f"Username already exists: {username}")
            user = {
                'id': new_id(),
                'username': username,
                'passwordHash': password_hash,
                'passwordSalt': password_salt,
                'isAdmin': is_admin,
                'notificationPreferences': default_notification_preferences(),
                'createdAt': utcnow(),
            }
            self.users[user['id']] = user
            return _export(user)

    def update_user(self, user_id, updates):
        with self._lock:
            user = self.users.get(user_id)
            if not user:
                return None
            for key in ('isAdmin', 'notificationPreferences', 'passwordHash', 'passwordSalt'):
                if key in updates:
                    user[key] = copy.deepcopy(updates[key])
            return _export(user)

    # Friends

    def _visible_friend(self, friend_id, owner_id):
        friend = self.friends.get(friend_id)
        if not friend:
            return None
        if friend['userId'] == owner_id:
            return friend
        if friend['userId'] is None and is_guest_owner(owner_id):
            return friend
        return None

    def get_friend(self, friend_id, owner_id):
        with self._lock:
            return _export(self._visible_friend(friend_id, owner_id))

    def get_all_friends(self, owner_id):
        with self._lock:
            visible = [f for f in self.friends.values()
                       if f['userId'] == owner_id or (f['userId'] is None and is_guest_owner(owner_id))]
            return [_export(f) for f in reversed(visible)]

    def create_friend(self, data, owner_id):
        with self._lock:
            record = self._new_friend_record(data, owner_id)
            self.friends[record['id']] = record
            return _export(record)

    def update_friend(self, friend_id, updates, owner_id):
        with self._lock:
            friend = self._visible_friend(friend_id, owner_id)
            if not friend:
                return None
            if friend['userId'] is None:
                raise ReadOnlyRecordError('Demo friends cannot be modified')
            for key, value in updates.items():
                if key in friend and key not in ('id', 'userId', 'createdAt'):
                    friend[key] = copy.deepcopy(value)
            return _export(friend)

    def delete_friend(self, friend_id, owner_id):
        with self._lock:
            friend = self._visible_friend(friend_id, owner_id)
            if not friend:
                return False
            if friend['userId'] is None:
                raise ReadOnlyRecordError('Demo friends cannot be deleted')
            del self.friends[friend_id]
            for gift_id in [g['id'] for g in self.saved_gifts.values() if g['friendId'] == friend_id]:
                del self.saved_gifts[gift_id]
            for reminder_id in [r['id'] for r in self.reminders.values() if r['friendId'] == friend_id]:
                del self.reminders[reminder_id]
            return True

    # Saved gifts

    def get_saved_gift(self, gift_id, owner_id):
        with self._lock:
            gift = self.saved_gifts.get(gift_id)
            if gift and gift['userId'] == owner_id:
                return _export(gift)
        return None

    def get_saved_gifts_by_friend(self, friend_id, owner_id):
        with self._lock:
            return [_export(g) for g in reversed(list(self.saved_gifts.values()))
                    if g['friendId'] == friend_id and g['userId'] == owner_id]

    def get_all_saved_gifts(self, owner_id):
        with self._lock:
            return [_export(g) for g in reversed(list(self.saved_gifts.values())) if g['userId'] == owner_id]

    def create_saved_gift(self, data, owner_id):
        with self._lock:
            gift = {
                'id': new_id(),
                'userId': owner_id,
                'friendId': data['friendId'],
                'giftData': copy.deepcopy(data['giftData']),
                'createdAt': utcnow(),
            }
            self.saved_gifts[gift['id']] = gift
            return _export(gift)

    def delete_saved_gift(self, gift_id, owner_id):
        with self._lock:
            gift = self.saved_gifts.get(gift_id)
            if not gift or gift['userId'] != owner_id:
                return False
            del self.saved_gifts[gift_id]
            for reminder in self.reminders.values():
                if reminder.get('savedGiftId') == gift_id:
                    reminder['savedGiftId'] = None
            return True

    # Reminders

    def _export_reminder(self, reminder):
        data = _export(reminder)
        friend = self.friends.get(reminder['friendId'])
        data['friendName'] = friend['name'] if friend else None
        return data

    def get_reminder(self, reminder_id, owner_id=None):
        with self._lock:
            reminder = self.reminders.get(reminder_id)
            if reminder and (owner_id is None or reminder['userId'] == owner_id):
                return self._export_reminder(reminder)
        return None

    def get_reminders(self, owner_id):
        with self._lock:
            return [self._export_reminder(r) for r in reversed(list(self.reminders.values()))
                    if r['userId'] == owner_id]

    def get_reminders_by_friend(self, friend_id, owner_id):
        with self._lock:
            return [self._export_reminder(r) for r in reversed(list(self.reminders.values()))
                    if r['userId'] == owner_id and r['friendId'] == friend_id]

    def create_reminder(self, data, owner_id):
        with self._lock:
            now = utcnow()
            reminder = {
                'id': new_id(),
                'userId': owner_id,
                'friendId': data['friendId'],
                'savedGiftId': data.get('savedGiftId'),
                'title': data['title'],
                'reminderDate': data['reminderDate'],
                'occasionDate': data['occasionDate'],
                'occasionType': data.get('occasionType') or 'birthday',
                'notificationMethods': copy.deepcopy(data.get('notificationMethods')),
                'message': data.get('message'),
                'advanceDays': 7 if data.get('advanceDays') is None else data['advanceDays'],
                'status': data.get('status') or 'active',
                'isRecurring': bool(data.get('isRecurring')),
                'lastSentAt': None,
                'snoozeUntil': data.get('snoozeUntil'),
                'createdAt': now,
                'updatedAt': now,
            }
            self.reminders[reminder['id']] = reminder
            return self._export_reminder(reminder)

    def update_reminder(self, reminder_id, updates, owner_id=None):
        with self._lock:
            reminder = self.reminders.get(reminder_id)
            if not reminder or (owner_id is not None and reminder['userId'] != owner_id):
                return None
            for key, value in updates.items():
                if key in reminder and key not in ('id', 'userId', 'createdAt'):
                    reminder[key] = copy.deepcopy(value)
            reminder['updatedAt'] = utcnow()
            return self._export_reminder(reminder)

    def delete_reminder(self, reminder_id, owner_id):
        with self._lock:
            reminder = self.reminders.get(reminder_id)
            if not reminder or reminder['userId'] != owner_id:
                return False
            del self.reminders[reminder_id]
            return True

    def get_due_reminders(self, today):
        with self._lock:
            due = []
            for reminder in self.reminders.values():
                if (reminder['status'] == 'active' and reminder.get('reminderDate')
                        and reminder['reminderDate'] <= today):
                    due.append(reminder)
                elif (reminder['status'] == 'snoozed' and reminder.get('snoozeUntil')
                      and reminder['snoozeUntil'] <= today):
                    due.append(reminder)
            return [self._export_reminder(r) for r in sorted(due, key=lambda r: r.get('reminderDate') or today)]

    # Analytics

    def _append(self, bucket: List[Dict[str, Any]], record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            bucket.append(record)
            return _export(record)

    @staticmethod
    def _newest(bucket, limit, predicate=None):
        records = [r for r in reversed(bucket) if predicate is None or predicate(r)]
        return [_export(r) for r in records[:limit]]

    def create_analytics_event(self, data, user_id):
        return self._append(self.analytics_events, {
            'id': new_id(),
            'userId': user_id,
            'sessionId': data.get('sessionId'),
            'eventType': data['eventType'],
            'eventData': copy.deepcopy(data.get('eventData') or {}),
            'timestamp': utcnow(),
            'userAgent': data.get('userAgent'),
            'ipAddress': data.get('ipAddress'),
        })

    def get_analytics_events(self, limit=100, user_id=None):
        with self._lock:
            return self._newest(self.analytics_events, limit,
                                None if user_id is None else lambda r: r['userId'] == user_id)

    def create_feedback(self, data, user_id):
        return self._append(self.feedback, {
            'id': new_id(),
            'userId': user_id,
            'friendId': data.get('friendId'),
            'giftName': data['giftName'],
            'recommendationData': copy.deepcopy(data.get('recommendationData') or {}),
            'rating': data['rating'],
            'feedback': data.get('feedback'),
            'helpful': data.get('helpful'),
            'purchased': bool(data.get('purchased')),
            'createdAt': utcnow(),
        })

    def get_feedback(self, limit=100, user_id=None):
        with self._lock:
            return self._newest(self.feedback, limit,
                                None if user_id is None else lambda r: r['userId'] == user_id)

    def create_performance_metric(self, data, user_id):
        return self._append(self.performance_metrics, {
            'id': new_id(),
            'userId': user_id,
            'operation': data['operation'],
            'responseTime': data['responseTime'],
            'success': bool(data.get('success', True)),
            'errorMessage': data.get('errorMessage'),
            'metadata': copy.deepcopy(data.get('metadata') or {}),
            'timestamp': utcnow(),
        })

    def get_performance_metrics(self, limit=100, operation=None, user_id=None):
        def matches(record):
            if operation and record['operation'] != operation:
                return False
            return user_id is None or record['userId'] == user_id

        with self._lock:
            return self._newest(self.performance_metrics, limit, matches)

    # Blog

    def get_all_blog_posts(self, include_unpublished=False):
        with self._lock:
            return [_export(p) for p in reversed(list(self.blog_posts.values()))
                    if include_unpublished or p['published']]

    def get_blog_post(self, post_id):
        with self._lock:
            return _export(self.blog_posts.get(post_id))

    def create_blog_post(self, data, author_id):
        with self._lock:
            now = utcnow()
            post = {
                'id': new_id(),
                'title': data['title'],
                'content': data['content'],
                'excerpt': data.get('excerpt'),
                'authorId': author_id,
                'published': data.get('published', True),
                'createdAt': now,
                'updatedAt': now,
            }
            self.blog_posts[post['id']] = post
            return _export(post)

    def update_blog_post(self, post_id, updates):
        with self._lock:
            post = self.blog_posts.get(post_id)
            if not post:
                return None
            for key in ('title', 'content', 'excerpt', 'published'):
                if key in updates:
                    post[key] = updates[key]
            post['updatedAt'] = utcnow()
            return _export(post)

    def delete_blog_post(self, post_id):
        with self._lock:
            return self.blog_posts.pop(post_id, None) is not None


# camelCase API field -> model attribute
FRIEND_FIELDS = {
    'name': 'name', 'personalityTraits': 'personality_traits', 'interests': 'interests',
    'category': 'category', 'notes': 'notes', 'country': 'country', 'currency': 'currency',
    'profilePicture': 'profile_picture', 'gender': 'gender', 'ageRange': 'age_range', 'theme': 'theme',
}
REMINDER_FIELDS = {
    'friendId': 'friend_id', 'savedGiftId': 'saved_gift_id', 'title': 'title',
    'reminderDate': 'reminder_date', 'occasionDate': 'occasion_date', 'occasionType': 'occasion_type',
    'notificationMethods': 'notification_methods', 'message': 'message', 'advanceDays': 'advance_days',
    'status': 'status', 'isRecurring': 'is_recurring', 'lastSentAt': 'last_sent_at',
    'snoozeUntil': 'snooze_until',
}
BLOG_FIELDS = {'title': 'title', 'content': 'content', 'excerpt': 'excerpt', 'published': 'published'}


def _coerce_datetime(value):
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace('Z', '+00:00')).replace(tzinfo=None)
    return value


class DatabaseStorage(Storage):
    """SQLAlchemy backend using the Flask-SQLAlchemy session"""

    def __init__(self, database=None):
        self.db = database or db

    @property
    def session(self):
        return self.db.session

    def _commit(self):
        try:
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Database commit failed: {str(e)}")
            raise StorageError(str(e)) from e

    @staticmethod
    def _apply(instance, updates: Dict[str, Any], field_map: Dict[str, str]):
        for key, attribute in field_map.items():
            if key in updates:
                value = updates[key]
                if attribute == 'last_sent_at':
                    value = _coerce_datetime(value)
                setattr(instance, attribute, copy.deepcopy(value))

    # Users

    def get_user(self, user_id):
        user = self.session.get(User, user_id)
        return user.to_dict(include_credentials=True) if user else None

    def get_user_by_username(self, username):
        user = self.session.query(User).filter_by(username=username).first()
        return user.to_dict(include_credentials=True) if user else None

    def create_user(self, username, password_hash, password_salt, is_admin=False):
        user = User(username=username, password_hash=password_hash, password_salt=password_salt,
                    is_admin=is_admin, notification_preferences=default_notification_preferences())
        self.session.add(user)
        self._commit()
        return user.to_dict(include_credentials=True)

    def update_user(self, user_id, updates):
        user = self.session.get(User, user_id)
        if not user:
            return None
        if 'isAdmin' in updates:
            user.is_admin = bool(updates['isAdmin'])
        if 'notificationPreferences' in updates:
            user.notification_preferences = copy.deepcopy(updates['notificationPreferences'])
        if 'passwordHash' in updates:
            user.password_hash = updates['passwordHash']
            user.password_salt = updates['passwordSalt']
        self._commit()
        return user.to_dict(include_credentials=True)

    # Friends

    def _owned_friend(self, friend_id, owner_id):
        return self.session.query(Friend).filter_by(id=friend_id, user_id=owner_id).first()

    def get_friend(self, friend_id, owner_id):
        friend = self._owned_friend(friend_id, owner_id)
        return friend.to_dict() if friend else None

    def get_all_friends(self, owner_id):
        friends = (self.session.query(Friend).filter_by(user_id=owner_id)
                   .order_by(Friend.created_at.desc()).all())
        return [f.to_dict() for f in friends]

    def create_friend(self, data, owner_id):
        friend = Friend(user_id=owner_id)
        self._apply(friend, data, FRIEND_FIELDS)
        friend.category = friend.category or 'friend'
        friend.country = friend.country or 'United States'
        friend.currency = friend.currency or 'USD'
        friend.theme = friend.theme or 'default'
        self.session.add(friend)
        self._commit()
        return friend.to_dict()

    def update_friend(self, friend_id, updates, owner_id):
        friend = self._owned_friend(friend_id, owner_id)
        if not friend:
            return None
        self._apply(friend, updates, FRIEND_FIELDS)
        self._commit()
        return friend.to_dict()

    def delete_friend(self, friend_id, owner_id):
        friend = self._owned_friend(friend_id, owner_id)
        if not friend:
            return False
        self.session.delete(friend)
        self._commit()
        return True

    def get_unique_categories(self, owner_id):
        rows = (self.session.query(Friend.category).filter_by(user_id=owner_id)
                .distinct().all())
        return sorted({row[0] or 'friend' for row in rows})

    # Saved gifts

    def get_saved_gift(self, gift_id, owner_id):
        gift = self.session.query(SavedGift).filter_by(id=gift_id, user_id=owner_id).first()
        return gift.to_dict() if gift else None

    def get_saved_gifts_by_friend(self, friend_id, owner_id):
        gifts = (self.session.query(SavedGift).filter_by(friend_id=friend_id, user_id=owner_id)
                 .order_by(SavedGift.created_at.desc()).all())
        return [g.to_dict() for g in gifts]

    def get_all_saved_gifts(self, owner_id):
        gifts = (self.session.query(SavedGift).filter_by(user_id=owner_id)
                 .order_by(SavedGift.created_at.desc()).all())
        return [g.to_dict() for g in gifts]

    def create_saved_gift(self, data, owner_id):
        gift = SavedGift(user_id=owner_id, friend_id=data['friendId'], gift_data=copy.deepcopy(data['giftData']))
        self.session.add(gift)
        self._commit()
        return gift.to_dict()

    def delete_saved_gift(self, gift_id, owner_id):
        gift = self.session.query(SavedGift).filter_by(id=gift_id, user_id=owner_id).first()
        if not gift:
            return False
        self.session.query(GiftReminder).filter_by(saved_gift_id=gift_id).update({'saved_gift_id': None})
        self.session.delete(gift)
        self._commit()
        return True

    # Reminders

    def _reminder_query(self, owner_id=None):
        query = self.session.query(GiftReminder)
        if owner_id is not None:
            query = query.filter_by(user_id=owner_id)
        return query

    def get_reminder(self, reminder_id, owner_id=None):
        reminder = self._reminder_query(owner_id).filter_by(id=reminder_id).first()
        return reminder.to_dict() if reminder else None

    def get_reminders(self, owner_id):
        reminders = self._reminder_query(owner_id).order_by(GiftReminder.created_at.desc()).all()
        return [r.to_dict() for r in reminders]

    def get_reminders_by_friend(self, friend_id, owner_id):
        reminders = (self._reminder_query(owner_id).filter_by(friend_id=friend_id)
                     .order_by(GiftReminder.created_at.desc()).all())
        return [r.to_dict() for r in reminders]

    def create_reminder(self, data, owner_id):
        reminder = GiftReminder(user_id=owner_id)
        self._apply(reminder, data, REMINDER_FIELDS)
        if reminder.advance_days is None:
            reminder.advance_days = 7
        reminder.status = reminder.status or 'active'
        reminder.occasion_type = reminder.occasion_type or 'birthday'
        self.session.add(reminder)
        self._commit()
        return reminder.to_dict()

    def update_reminder(self, reminder_id, updates, owner_id=None):
        reminder = self._reminder_query(owner_id).filter_by(id=reminder_id).first()
        if not reminder:
            return None
        self._apply(reminder, updates, REMINDER_FIELDS)
        reminder.updated_at = utcnow()
        self._commit()
        return reminder.to_dict()

    def delete_reminder(self, reminder_id, owner_id):
        reminder = self._reminder_query(owner_id).filter_by(id=reminder_id).first()
        if not reminder:
            return False
        self.session.delete(reminder)
        self._commit()
        return True

    def get_due_reminders(self, today):
        reminders = (self.session.query(GiftReminder)
                     .filter(or_(
                         and_(GiftReminder.status == 'active', GiftReminder.reminder_date <= today),
                         and_(GiftReminder.status == 'snoozed', GiftReminder.snooze_until <= today),
                     ))
                     .order_by(GiftReminder.reminder_date.asc()).all())
        return [r.to_dict() for r in reminders]

    # Analytics

    def create_analytics_event(self, data, user_id):
        event = AnalyticsEvent(user_id=user_id, session_id=data.get('sessionId'),
                               event_type=data['eventType'], event_data=data.get('eventData') or {},
                               user_agent=data.get('userAgent'), ip_address=data.get('ipAddress'))
        self.session.add(event)
        self._commit()
        return event.to_dict()

    def get_analytics_events(self, limit=100, user_id=None):
        query = self.session.query(AnalyticsEvent)
        if user_id is not None:
            query = query.filter_by(user_id=user_id)
        return [e.to_dict() for e in query.order_by(AnalyticsEvent.timestamp.desc()).limit(limit).all()]

    def create_feedback(self, data, user_id):
        feedback = RecommendationFeedback(
            user_id=user_id, friend_id=data.get('friendId'), gift_name=data['giftName'],
            recommendation_data=data.get('recommendationData') or {}, rating=data['rating'],
            feedback=data.get('feedback'), helpful=data.get('helpful'),
            purchased=bool(data.get('purchased')))
        self.session.add(feedback)
        self._commit()
        return feedback.to_dict()

    def get_feedback(self, limit=100, user_id=None):
        query = self.session.query(RecommendationFeedback)
        if user_id is not None:
            query = query.filter_by(user_id=user_id)
        return [f.to_dict() for f in query.order_by(RecommendationFeedback.created_at.desc()).limit(limit).all()]

    def create_performance_metric(self, data, user_id):
        metric = PerformanceMetric(user_id=user_id, operation=data['operation'],
                                   response_time=data['responseTime'],
                                   success=bool(data.get('success', True)),
                                   error_message=data.get('errorMessage'),
                                   extra=data.get('metadata') or {})
        self.session.add(metric)
        self._commit()
        return metric.to_dict()

    def get_performance_metrics(self, limit=100, operation=None, user_id=None):
        query = self.session.query(PerformanceMetric)
        if operation:
            query = query.filter_by(operation=operation)
        if user_id is not None:
            query = query.filter_by(user_id=user_id)
        return [m.to_dict() for m in query.order_by(PerformanceMetric.timestamp.desc()).limit(limit).all()]

    # Blog

    def get_all_blog_posts(self, include_unpublished=False):
        query = self.session.query(BlogPost)
        if not include_unpublished:
            query = query.filter_by(published=True)
        return [p.to_dict() for p in query.order_by(BlogPost.created_at.desc()).all()]

    def get_blog_post(self, post_id):
        post = self.session.get(BlogPost, post_id)
        return post.to_dict() if post else None

    def create_blog_post(self, data, author_id):
        post = BlogPost(author_id=author_id)
        self._apply(post, data, BLOG_FIELDS)
        if post.published is None:
            post.published = True
        self.session.add(post)
        self._commit()
        return post.to_dict()

    def update_blog_post(self, post_id, updates):
        post = self.session.get(BlogPost, post_id)
        if not post:
            return None
        self._apply(post, updates, BLOG_FIELDS)
        post.updated_at = utcnow()
        self._commit()
        return post.to_dict()

    def delete_blog_post(self, post_id):
        post = self.session.get(BlogPost, post_id)
        if not post:
            return False
        self.session.delete(post)
        self._commit()
        return True

    def ping(self):
        self.session.execute(text('SELECT 1'))
        return True


class StorageAdapter(Storage):
    """
    Routes storage calls between the persistent backend and the guest
    in-memory backend based on the caller's owner id
    """

    def __init__(self, persistent: Storage, guest: Optional[MemStorage] = None):
        self.persistent = persistent
        self.guest = guest or MemStorage(seed_demo=True)

    @property
    def backend_name(self) -> str:
        return 'database' if isinstance(self.persistent, DatabaseStorage) else 'memory'

    def for_owner(self, owner_id: Optional[str]) -> Storage:
        return self.guest if is_guest_owner(owner_id) else self.persistent

    # Users live in the persistent backend only

    def get_user(self, user_id):
        return self.persistent.get_user(user_id)

    def get_user_by_username(self, username):
        return self.persistent.get_user_by_username(username)

    def create_user(self, username, password_hash, password_salt, is_admin=False):
        return self.persistent.create_user(username, password_hash, password_salt, is_admin)

    def update_user(self, user_id, updates):
        return self.persistent.update_user(user_id, updates)

    # Owner-scoped records

    def get_friend(self, friend_id, owner_id):
        return self.for_owner(owner_id).get_friend(friend_id, owner_id)

    def get_all_friends(self, owner_id):
        return self.for_owner(owner_id).get_all_friends(owner_id)

    def create_friend(self, data, owner_id):
        return self.for_owner(owner_id).create_friend(data, owner_id)

    def update_friend(self, friend_id, updates, owner_id):
        return self.for_owner(owner_id).update_friend(friend_id, updates, owner_id)

    def delete_friend(self, friend_id, owner_id):
        return self.for_owner(owner_id).delete_friend(friend_id, owner_id)

    def get_unique_categories(self, owner_id):
        return self.for_owner(owner_id).get_unique_categories(owner_id)

    def get_saved_gift(self, gift_id, owner_id):
        return self.for_owner(owner_id).get_saved_gift(gift_id, owner_id)

    def get_saved_gifts_by_friend(self, friend_id, owner_id):
        return self.for_owner(owner_id).get_saved_gifts_by_friend(friend_id, owner_id)

    def get_all_saved_gifts(self, owner_id):
        return self.for_owner(owner_id).get_all_saved_gifts(owner_id)

    def create_saved_gift(self, data, owner_id):
        return self.for_owner(owner_id).create_saved_gift(data, owner_id)

    def delete_saved_gift(self, gift_id, owner_id):
        return self.for_owner(owner_id).delete_saved_gift(gift_id, owner_id)

    def get_reminder(self, reminder_id, owner_id=None):
        return self.for_owner(owner_id).get_reminder(reminder_id, owner_id)

    def get_reminders(self, owner_id):
        return self.for_owner(owner_id).get_reminders(owner_id)

    def get_reminders_by_friend(self, friend_id, owner_id):
        return self.for_owner(owner_id).get_reminders_by_friend(friend_id, owner_id)

    def create_reminder(self, data, owner_id):
        return self.for_owner(owner_id).create_reminder(data, owner_id)

    def update_reminder(self, reminder_id, updates, owner_id=None):
        return self.for_owner(owner_id).update_reminder(reminder_id, updates, owner_id)

    def delete_reminder(self, reminder_id, owner_id):
        return self.for_owner(owner_id).delete_reminder(reminder_id, owner_id)

    def get_due_reminders(self, today):
        return self.persistent.get_due_reminders(today)

    # Analytics and blog are global

    def create_analytics_event(self, data, user_id):
        return self.persistent.create_analytics_event(data, user_id)

    def get_analytics_events(self, limit=100, user_id=None):
        return self.persistent.get_analytics_events(limit, user_id)

    def create_feedback(self, data, user_id):
        return self.persistent.create_feedback(data, user_id)

    def get_feedback(self, limit=100, user_id=None):
        return self.persistent.get_feedback(limit, user_id)

    def create_performance_metric(self, data, user_id):
        return self.persistent.create_performance_metric(data, user_id)

    def get_performance_metrics(self, limit=100, operation=None, user_id=None):
        return self.persistent.get_performance_metrics(limit, operation, user_id)

    def get_all_blog_posts(self, include_unpublished=False):
        return self.persistent.get_all_blog_posts(include_unpublished)

    def get_blog_post(self, post_id):
        return self.persistent.get_blog_post(post_id)

    def create_blog_post(self, data, author_id):
        return self.persistent.create_blog_post(data, author_id)

    def update_blog_post(self, post_id, updates):
        return self.persistent.update_blog_post(post_id, updates)

    def delete_blog_post(self, post_id):
        return self.persistent.delete_blog_post(post_id)

    def ping(self):
        return self.persistent.ping()


def create_storage(app) -> StorageAdapter:
    """
    Build the storage adapter for an application

    Args:
        app: Flask application with STORAGE_BACKEND configured

    Returns:
        StorageAdapter registered under app.extensions['storage']
    """
    backend = app.config.get('STORAGE_BACKEND', 'memory')
    if backend == 'database':
        persistent = DatabaseStorage(db)
    else:
        persistent = MemStorage(seed_demo=False)
    adapter = StorageAdapter(persistent)
    app.extensions['storage'] = adapter
    app.logger.info(f"Storage configured: {adapter.backend_name} backend")
    return adapter


def get_storage() -> StorageAdapter:
    """Storage adapter of the current application"""
    from flask import current_app
    return current_app.extensions['storage']
