from datetime import datetime, date, timezone
import uuid
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, JSON, Text, Boolean, ForeignKey
)
from sqlalchemy.orm import relationship
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
Base = db.Model


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def isoformat(value):
    """Render date/datetime values the way the JSON API exposes them"""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


DEFAULT_NOTIFICATION_PREFERENCES = {
    'email': {'enabled': False, 'address': ''},
    'sms': {'enabled': False, 'phoneNumber': ''},
    'push': {'enabled': False},
    'defaultAdvanceDays': 7,
}


def default_notification_preferences() -> dict:
    return {
        'email': dict(DEFAULT_NOTIFICATION_PREFERENCES['email']),
        'sms': dict(DEFAULT_NOTIFICATION_PREFERENCES['sms']),
        'push': dict(DEFAULT_NOTIFICATION_PREFERENCES['push']),
        'defaultAdvanceDays': DEFAULT_NOTIFICATION_PREFERENCES['defaultAdvanceDays'],
    }


class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(80), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    password_salt = Column(String(64), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    notification_preferences = Column(JSON, default=default_notification_preferences)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    friends = relationship("Friend", back_populates="owner", cascade="all, delete-orphan")
    saved_gifts = relationship("SavedGift", back_populates="owner", cascade="all, delete-orphan")
    reminders = relationship("GiftReminder", back_populates="owner", cascade="all, delete-orphan")

    def to_dict(self, include_credentials: bool = False):
        data = {
            'id': self.id,
            'username': self.username,
            'isAdmin': bool(self.is_admin),
            'notificationPreferences': self.notification_preferences or default_notification_preferences(),
            'createdAt': isoformat(self.created_at),
        }
        if include_credentials:
            data['passwordHash'] = self.password_hash
            data['passwordSalt'] = self.password_salt
        return data


class Friend(Base):
    __tablename__ = 'friends'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), index=True)
    name = Column(String(120), nullable=False)
    personality_traits = Column(JSON, nullable=False, default=list)
    interests = Column(JSON, nullable=False, default=list)
    category = Column(String(50), nullable=False, default='friend')
    notes = Column(Text)
    country = Column(String(100), default='United States')
    currency = Column(String(10), default='USD')
    profile_picture = Column(Text)
    gender = Column(String(30))
    age_range = Column(String(30))
    theme = Column(String(50), default='default')
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    owner = relationship("User", back_populates="friends")
    saved_gifts = relationship("SavedGift", back_populates="friend", cascade="all, delete-orphan")
    reminders = relationship("GiftReminder", back_populates="friend", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'name': self.name,
            'personalityTraits': list(self.personality_traits or []),
            'interests': list(self.interests or []),
            'category': self.category,
            'notes': self.notes,
            'country': self.country,
            'currency': self.currency,
            'profilePicture': self.profile_picture,
            'gender': self.gender,
            'ageRange': self.age_range,
            'theme': self.theme,
            'createdAt': isoformat(self.created_at),
        }


class SavedGift(Base):
    __tablename__ = 'saved_gifts'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), index=True)
    friend_id = Column(String(36), ForeignKey('friends.id', ondelete='CASCADE'), nullable=False, index=True)
    gift_data = Column(JSON, nullable=False)  # name, description, price, matchPercentage, image, shops
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    owner = relationship("User", back_populates="saved_gifts")
    friend = relationship("Friend", back_populates="saved_gifts")

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'friendId': self.friend_id,
            'giftData': self.gift_data,
            'createdAt': isoformat(self.created_at),
        }


class GiftReminder(Base):
    __tablename__ = 'gift_reminders'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), index=True)
    friend_id = Column(String(36), ForeignKey('friends.id', ondelete='CASCADE'), nullable=False, index=True)
    saved_gift_id = Column(String(36), ForeignKey('saved_gifts.id', ondelete='SET NULL'))
    title = Column(String(200), nullable=False)
    reminder_date = Column(Date, nullable=False, index=True)
    occasion_date = Column(Date, nullable=False)
    occasion_type = Column(String(50), nullable=False, default='birthday')
    notification_methods = Column(JSON, default=default_notification_preferences)
    message = Column(Text)
    advance_days = Column(Integer, default=7)
    status = Column(String(20), nullable=False, default='active', index=True)  # active, sent, cancelled, snoozed
    is_recurring = Column(Boolean, default=False)
    last_sent_at = Column(DateTime)
    snooze_until = Column(Date)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", back_populates="reminders")
    friend = relationship("Friend", back_populates="reminders")

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'friendId': self.friend_id,
            'friendName': self.friend.name if self.friend else None,
            'savedGiftId': self.saved_gift_id,
            'title': self.title,
            'reminderDate': isoformat(self.reminder_date),
            'occasionDate': isoformat(self.occasion_date),
            'occasionType': self.occasion_type,
            'notificationMethods': self.notification_methods,
            'message': self.message,
            'advanceDays': self.advance_days,
            'status': self.status,
            'isRecurring': bool(self.is_recurring),
            'lastSentAt': isoformat(self.last_sent_at),
            'snoozeUntil': isoformat(self.snooze_until),
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class AnalyticsEvent(Base):
    __tablename__ = 'user_analytics'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), index=True)
    session_id = Column(String(128))
    event_type = Column(String(100), nullable=False, index=True)
    event_data = Column(JSON)
    timestamp = Column(DateTime, default=utcnow, index=True)
    user_agent = Column(Text)
    ip_address = Column(String(64))

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'sessionId': self.session_id,
            'eventType': self.event_type,
            'eventData': self.event_data,
            'timestamp': isoformat(self.timestamp),
            'userAgent': self.user_agent,
            'ipAddress': self.ip_address,
        }


class RecommendationFeedback(Base):
    __tablename__ = 'recommendation_feedback'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), index=True)
    friend_id = Column(String(36))  # demo and guest friends never reach this table
    gift_name = Column(String(255), nullable=False)
    recommendation_data = Column(JSON)
    rating = Column(Integer, nullable=False)
    feedback = Column(Text)
    helpful = Column(Boolean)
    purchased = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'friendId': self.friend_id,
            'giftName': self.gift_name,
            'recommendationData': self.recommendation_data,
            'rating': self.rating,
            'feedback': self.feedback,
            'helpful': self.helpful,
            'purchased': bool(self.purchased),
            'createdAt': isoformat(self.created_at),
        }


class PerformanceMetric(Base):
    __tablename__ = 'performance_metrics'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), index=True)
    operation = Column(String(100), nullable=False, index=True)
    response_time = Column(Integer, nullable=False)  # milliseconds
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text)
    extra = Column('metadata', JSON)
    timestamp = Column(DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'operation': self.operation,
            'responseTime': self.response_time,
            'success': bool(self.success),
            'errorMessage': self.error_message,
            'metadata': self.extra,
            'timestamp': isoformat(self.timestamp),
        }


class BlogPost(Base):
    __tablename__ = 'blog_posts'

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(Text)
    author_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'))
    published = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'content': self.content,
            'excerpt': self.excerpt,
            'authorId': self.author_id,
            'published': bool(self.published),
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
