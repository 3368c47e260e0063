# config/security.py
"""
Security configuration for the GiftGenie API
"""

import os
from datetime import timedelta


class SecurityConfig:
    """Security configuration settings"""

    # Session settings
    SESSION_COOKIE_NAME = 'giftgenie_session'
    SESSION_COOKIE_SECURE = os.environ.get('SESSION_COOKIE_SECURE', 'true').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)

    # Password hashing
    PASSWORD_HASH_ITERATIONS = 200000
    MIN_PASSWORD_LENGTH = 6

    # Rate limiting
    RATELIMIT_STRATEGY = 'fixed-window'
    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_DEFAULT = '200 per minute'
    RATELIMIT_AUTH = '5 per minute'

    # CSRF protection
    WTF_CSRF_ENABLED = os.environ.get('WTF_CSRF_ENABLED', 'true').lower() == 'true'
    WTF_CSRF_TIME_LIMIT = 3600  # 1 hour
    WTF_CSRF_HEADERS = ['X-CSRFToken', 'X-CSRF-Token']

    # Content Security Policy
    CSP_POLICY = {
        'default-src': "'self'",
        'script-src': "'self'",
        'style-src': "'self' 'unsafe-inline'",
        'img-src': "'self' data: https:",
        'connect-src': "'self'",
        'font-src': "'self' data:",
        'object-src': "'none'",
        'base-uri': "'self'",
        'form-action': "'self'"
    }

    # Security headers
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'Referrer-Policy': 'strict-origin-when-cross-origin',
        'Permissions-Policy': 'camera=(), microphone=(), geolocation=()'
    }
    HSTS_HEADER = 'max-age=31536000; includeSubDomains'

    # Uploads
    MAX_CONTENT_LENGTH = 6 * 1024 * 1024
    MAX_IMAGE_SIZE = 5 * 1024 * 1024
    ALLOWED_IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.gif', '.webp'}

    # Audit settings
    AUDIT_LOG_LEVEL = 'INFO'


def build_csp_header(policy: dict) -> str:
    """Serialize a CSP policy mapping into a header value"""
    return '; '.join(f"{directive} {value}" for directive, value in policy.items())
