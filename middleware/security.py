# middleware/security.py
"""
Security Middleware for Request Processing
"""

from flask import request, jsonify, session, g, current_app
from functools import wraps
import logging
import secrets

from config.security import build_csp_header
from core.security_manager import get_security_manager
from core.storage import GUEST_PREFIX, get_storage, public_user

logger = logging.getLogger(__name__)


def security_headers(response):
    """Add security headers to all responses"""
    for header, value in current_app.config.get('SECURITY_HEADERS', {}).items():
        response.headers.setdefault(header, value)

    csp_policy = current_app.config.get('CSP_POLICY')
    if csp_policy:
        response.headers.setdefault('Content-Security-Policy', build_csp_header(csp_policy))

    if not current_app.debug and not current_app.testing:
        response.headers['Strict-Transport-Security'] = current_app.config.get(
            'HSTS_HEADER', 'max-age=31536000; includeSubDomains')

    return response


def load_current_user():
    """Resolve g.user from the session cookie"""
    g.user = None
    user_id = session.get('user_id')
    if user_id:
        user = get_storage().get_user(user_id)
        if user is None:
            logger.info(f"Session refers to unknown user {user_id}, clearing")
            session.pop('user_id', None)
        else:
            g.user = public_user(user)


def get_owner_id() -> str:
    """
    Owner id for friend, gift and reminder records

    Signed-in users own records by user id. Anonymous visitors get a
    guest id stored in their session on first use.
    """
    user = g.get('user')
    if user:
        return user['id']

    guest_id = session.get('guest_id')
    if not guest_id:
        guest_id = f"{GUEST_PREFIX}{secrets.token_hex(12)}"
        session['guest_id'] = guest_id
        session.permanent = True
        logger.debug(f"Assigned guest id {guest_id}")
    return guest_id


def get_user_id():
    """Signed-in user's id or None for guests"""
    user = g.get('user')
    return user['id'] if user else None


def require_auth(f):
    """Decorator to require authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.get('user'):
            get_security_manager().log_security_event('unauthorized_access_attempt', {
                'endpoint': request.endpoint,
                'method': request.method
            })
            return jsonify({'error': 'Authentication required'}), 401

        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """Decorator to require an administrator; the flag is re-read from storage"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = g.get('user')
        if not user:
            get_security_manager().log_security_event('unauthorized_access_attempt', {
                'endpoint': request.endpoint,
                'method': request.method
            })
            return jsonify({'error': 'Authentication required'}), 401

        fresh = get_storage().get_user(user['id'])
        if not fresh or not fresh.get('isAdmin'):
            get_security_manager().log_security_event('admin_access_denied', {
                'endpoint': request.endpoint,
                'user_id': user['id']
            })
            return jsonify({'error': 'Admin access required'}), 403

        return f(*args, **kwargs)
    return decorated_function
