# api/auth.py
"""
Session-based Authentication API
"""

from flask import Blueprint, request, jsonify, session, g, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import generate_csrf
import logging

from core.security_manager import get_security_manager
from core.storage import StorageError, get_storage, public_user
from core.validation import ValidationError, validate_notification_preferences, validate_registration
from middleware.security import require_admin, require_auth

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

# Rate limiter shared by all endpoints, bound to the app in create_app
limiter = Limiter(key_func=get_remote_address)


def auth_limit():
    return current_app.config.get('RATELIMIT_AUTH', '5 per minute')


def _user_payload(user):
    return {'id': user['id'], 'username': user['username'], 'isAdmin': bool(user.get('isAdmin'))}


def _start_session(user):
    session.clear()
    session.permanent = True
    session['user_id'] = user['id']


@auth_bp.route('/api/auth/register', methods=['POST'])
@limiter.limit(auth_limit)
def register():
    """Create an account and sign it in"""
    security_manager = get_security_manager()
    try:
        data = validate_registration(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': 'Invalid registration data', 'errors': e.errors}), 400

    storage = get_storage()
    try:
        if storage.get_user_by_username(data['username']):
            security_manager.log_security_event('registration_failed', {
                'reason': 'duplicate_username',
                'username': data['username']
            })
            return jsonify({'error': 'Username already exists'}), 409

        password_hash, salt = security_manager.hash_password(data['password'])
        user = storage.create_user(data['username'], password_hash, salt)
    except StorageError as e:
        logger.error(f"Registration failed: {str(e)}")
        return jsonify({'error': 'Username already exists'}), 409
    except Exception as e:
        logger.error(f"Registration error: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to register user'}), 500

    _start_session(user)
    security_manager.log_security_event('user_registered', {
        'user_id': user['id'],
        'username': user['username']
    })
    return jsonify(_user_payload(user)), 201


@auth_bp.route('/api/auth/login', methods=['POST'])
@limiter.limit(auth_limit)
def login():
    """
    Password login; the session cookie carries the user id afterwards
    """
    security_manager = get_security_manager()
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    username = data.get('username')
    password = data.get('password')
    username = username.strip() if isinstance(username, str) else ''

    if not username or not password or not isinstance(password, str):
        security_manager.log_security_event('login_failed', {
            'reason': 'missing_credentials',
            'username': username
        })
        return jsonify({'error': 'Username and password required'}), 400

    try:
        user = get_storage().get_user_by_username(username)
    except Exception as e:
        logger.error(f"Login error: {str(e)}", exc_info=True)
        return jsonify({'error': 'Login failed'}), 500

    if not user or not security_manager.verify_password(
            password, user.get('passwordHash'), user.get('passwordSalt')):
        security_manager.log_security_event('login_failed', {
            'reason': 'invalid_credentials',
            'username': username
        })
        return jsonify({'error': 'Invalid credentials'}), 401

    _start_session(user)
    security_manager.log_security_event('login_success', {
        'user_id': user['id'],
        'username': username
    })
    return jsonify(_user_payload(user))


@auth_bp.route('/api/auth/logout', methods=['POST'])
def logout():
    user_id = session.get('user_id')
    session.clear()
    if user_id:
        get_security_manager().log_security_event('logout', {'user_id': user_id})
    return jsonify({'message': 'Logged out successfully'})


@auth_bp.route('/api/auth/me', methods=['GET'])
@require_auth
def me():
    return jsonify(g.user)


@auth_bp.route('/api/auth/promote-admin', methods=['POST'])
@require_admin
def promote_admin():
    """Grant admin rights to another user"""
    data = request.get_json(silent=True) or {}
    user_id = data.get('userId')
    if not user_id:
        return jsonify({'error': 'userId is required'}), 400

    try:
        user = get_storage().update_user(user_id, {'isAdmin': True})
    except Exception as e:
        logger.error(f"Failed to promote user {user_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to promote user'}), 500

    if not user:
        return jsonify({'error': 'User not found'}), 404

    get_security_manager().log_security_event('admin_promoted', {
        'promoted_user_id': user_id,
        'promoted_by': g.user['id']
    })
    return jsonify(public_user(user))


@auth_bp.route('/api/auth/csrf-token', methods=['GET'])
def csrf_token():
    return jsonify({'csrfToken': generate_csrf()})


@auth_bp.route('/api/user/notification-preferences', methods=['GET'])
@require_auth
def get_notification_preferences():
    user = get_storage().get_user(g.user['id'])
    return jsonify(user.get('notificationPreferences') or {})


@auth_bp.route('/api/user/notification-preferences', methods=['PUT'])
@require_auth
def update_notification_preferences():
    try:
        preferences = validate_notification_preferences(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': 'Invalid notification preferences', 'errors': e.errors}), 400

    try:
        user = get_storage().update_user(g.user['id'], {'notificationPreferences': preferences})
    except Exception as e:
        logger.error(f"Failed to update notification preferences: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to update notification preferences'}), 500

    return jsonify(user['notificationPreferences'])
