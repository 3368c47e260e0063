# api/friends.py
"""
Friends API endpoints
"""

from flask import Blueprint, request, jsonify, current_app, send_from_directory
import logging

from core.storage import ReadOnlyRecordError, get_storage
from core.validation import ValidationError, validate_friend
from middleware.security import get_owner_id, require_auth
from services.uploads import UploadError, save_image_upload

friends_bp = Blueprint('friends', __name__)
logger = logging.getLogger(__name__)


@friends_bp.route('/api/friends', methods=['GET'])
def list_friends():
    try:
        return jsonify(get_storage().get_all_friends(get_owner_id()))
    except Exception as e:
        logger.error(f"Failed to fetch friends: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch friends'}), 500


@friends_bp.route('/api/friends/categories', methods=['GET'])
def list_categories():
    try:
        return jsonify(get_storage().get_unique_categories(get_owner_id()))
    except Exception as e:
        logger.error(f"Failed to fetch categories: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch categories'}), 500


@friends_bp.route('/api/friends/<friend_id>', methods=['GET'])
def get_friend(friend_id):
    try:
        friend = get_storage().get_friend(friend_id, get_owner_id())
    except Exception as e:
        logger.error(f"Failed to fetch friend {friend_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch friend'}), 500

    if not friend:
        return jsonify({'error': 'Friend not found'}), 404
    return jsonify(friend)


@friends_bp.route('/api/friends', methods=['POST'])
def create_friend():
    try:
        data = validate_friend(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': 'Invalid friend data', 'errors': e.errors}), 400

    try:
        friend = get_storage().create_friend(data, get_owner_id())
    except Exception as e:
        logger.error(f"Failed to create friend: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to create friend'}), 500

    logger.info(f"Created friend {friend['id']}")
    return jsonify(friend), 201


@friends_bp.route('/api/friends/<friend_id>', methods=['PUT'])
def update_friend(friend_id):
    try:
        updates = validate_friend(request.get_json(silent=True), partial=True)
    except ValidationError as e:
        return jsonify({'error': 'Invalid friend data', 'errors': e.errors}), 400

    try:
        friend = get_storage().update_friend(friend_id, updates, get_owner_id())
    except ReadOnlyRecordError:
        return jsonify({'error': 'Demo friends cannot be modified'}), 403
    except Exception as e:
        logger.error(f"Failed to update friend {friend_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to update friend'}), 500

    if not friend:
        return jsonify({'error': 'Friend not found'}), 404
    return jsonify(friend)


@friends_bp.route('/api/friends/<friend_id>', methods=['DELETE'])
def delete_friend(friend_id):
    try:
        deleted = get_storage().delete_friend(friend_id, get_owner_id())
    except ReadOnlyRecordError:
        return jsonify({'error': 'Demo friends cannot be deleted'}), 403
    except Exception as e:
        logger.error(f"Failed to delete friend {friend_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to delete friend'}), 500

    if not deleted:
        return jsonify({'error': 'Friend not found'}), 404
    return '', 204


@friends_bp.route('/api/friends/<friend_id>/reminders', methods=['GET'])
@require_auth
def friend_reminders(friend_id):
    try:
        return jsonify(get_storage().get_reminders_by_friend(friend_id, get_owner_id()))
    except Exception as e:
        logger.error(f"Failed to fetch reminders for friend {friend_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch reminders'}), 500


@friends_bp.route('/api/upload/profile-picture', methods=['POST'])
def upload_profile_picture():
    """Store a profile picture and return its public URL"""
    try:
        result = save_image_upload(request.files.get('profilePicture'), prefix='profile')
    except UploadError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Profile picture upload failed: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to upload image'}), 500
    return jsonify(result)


@friends_bp.route('/uploads/<path:filename>', methods=['GET'])
def uploaded_file(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)
