# core/security_manager.py
"""
Security manager for the GiftGenie API

Covers password hashing, the security audit trail and sanitizing of
user-supplied rich text (blog posts, reminder messages).
"""

import base64
import hmac
import json
import logging
import secrets
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import bleach
import redis
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from flask import has_request_context, request, session

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger('security')

ALLOWED_POST_TAGS = [
    'p', 'br', 'strong', 'em', 'b', 'i', 'u', 'a', 'ul', 'ol', 'li',
    'h1', 'h2', 'h3', 'h4', 'blockquote', 'code', 'pre', 'img', 'hr'
]
ALLOWED_POST_ATTRIBUTES = {
    'a': ['href', 'title', 'target', 'rel'],
    'img': ['src', 'alt', 'title', 'width', 'height'],
}


@dataclass
class SecurityAuditLog:
    """Security audit log entry"""
    timestamp: datetime
    event_type: str
    user_id: Optional[str]
    source_ip: str
    resource: str
    action: str
    details: Dict[str, Any]


class SecurityManager:
    """
    Password hashing and audit logging

    When a Redis client is available, audit entries are also kept there
    for `audit_retention_days` so operators can inspect recent events.
    """

    def __init__(self, iterations: int = 200000, redis_client: Optional[redis.Redis] = None,
                 audit_retention_days: int = 30):
        self.iterations = iterations
        self.redis_client = redis_client
        self.audit_retention_days = audit_retention_days

    def hash_password(self, password: str, salt: Optional[str] = None) -> Tuple[str, str]:
        """
        Hash password with PBKDF2-HMAC-SHA256

        Args:
            password: Plain text password
            salt: Optional salt (generates new if not provided)

        Returns:
            Tuple of (hashed_password, salt)
        """
        if salt is None:
            salt = secrets.token_hex(16)

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt.encode(),
            iterations=self.iterations,
        )
        hashed = base64.b64encode(kdf.derive(password.encode())).decode()
        return hashed, salt

    def verify_password(self, password: str, hashed_password: str, salt: str) -> bool:
        if not hashed_password or not salt:
            return False
        computed_hash, _ = self.hash_password(password, salt)
        return hmac.compare_digest(hashed_password, computed_hash)

    def log_security_event(self, event_type: str, details: Dict[str, Any] = None):
        """
        Log security event for audit trail

        Args:
            event_type: Type of security event (login_failed, admin_promoted, ...)
            details: Additional event details
        """
        in_request = has_request_context()
        entry = SecurityAuditLog(
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            user_id=session.get('user_id') if in_request else None,
            source_ip=(request.remote_addr or 'unknown') if in_request else 'system',
            resource=(request.endpoint or request.path) if in_request else 'system',
            action=request.method if in_request else 'system',
            details=details or {},
        )
        payload = asdict(entry)
        payload['timestamp'] = entry.timestamp.isoformat()

        audit_logger.info(f"{event_type} {json.dumps(payload, default=str)}")

        if self.redis_client is not None:
            try:
                self.redis_client.setex(
                    f"audit_log:{payload['timestamp']}:{event_type}",
                    86400 * self.audit_retention_days,
                    json.dumps(payload, default=str)
                )
            except redis.RedisError as e:
                logger.warning(f"Failed to store audit entry in Redis: {str(e)}")

    @staticmethod
    def sanitize_html(content: str) -> str:
        """Strip tags and attributes outside the blog allow-list"""
        return bleach.clean(content or '', tags=ALLOWED_POST_TAGS,
                            attributes=ALLOWED_POST_ATTRIBUTES, strip=True)

    @staticmethod
    def sanitize_text(content: str) -> str:
        """Remove all markup from plain-text fields"""
        return bleach.clean(content or '', tags=[], strip=True)


def init_security_manager(app, redis_client=None) -> SecurityManager:
    """Create the security manager and register it on the app"""
    manager = SecurityManager(
        iterations=app.config.get('PASSWORD_HASH_ITERATIONS', 200000),
        redis_client=redis_client,
    )
    app.extensions['security_manager'] = manager
    return manager


def get_security_manager() -> SecurityManager:
    from flask import current_app
    return current_app.extensions['security_manager']
