# api/blog.py
"""
Blog endpoints; reading is public, writing is admin only
"""

import re

from flask import Blueprint, request, jsonify, g
import logging

from core.security_manager import SecurityManager
from core.storage import get_storage
from core.validation import ValidationError, validate_blog_post
from middleware.security import get_user_id, require_admin
from services.uploads import UploadError, save_image_upload

blog_bp = Blueprint('blog', __name__)
logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 200


def make_excerpt(content: str) -> str:
    """First 200 characters of the content with markup removed"""
    text = re.sub(r'\s+', ' ', SecurityManager.sanitize_text(content)).strip()
    return text[:EXCERPT_LENGTH]


def _viewer_is_admin() -> bool:
    user = g.get('user')
    if not user:
        return False
    fresh = get_storage().get_user(user['id'])
    return bool(fresh and fresh.get('isAdmin'))


def _clean_post(data):
    if 'content' in data:
        data['content'] = SecurityManager.sanitize_html(data['content'])
    if 'title' in data:
        data['title'] = SecurityManager.sanitize_text(data['title'])
    if data.get('excerpt'):
        data['excerpt'] = SecurityManager.sanitize_text(data['excerpt'])

    # Markup-only values are empty once sanitised
    emptied = [{'field': field, 'message': f"{field} is required"}
               for field in ('title', 'content') if field in data and not data[field].strip()]
    if emptied:
        raise ValidationError(emptied)
    return data


@blog_bp.route('/api/blog/posts', methods=['GET'])
def list_posts():
    try:
        return jsonify(get_storage().get_all_blog_posts(include_unpublished=_viewer_is_admin()))
    except Exception as e:
        logger.error(f"Failed to fetch blog posts: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch blog posts'}), 500


@blog_bp.route('/api/blog/posts/<post_id>', methods=['GET'])
def get_post(post_id):
    post = get_storage().get_blog_post(post_id)
    if not post or (not post['published'] and not _viewer_is_admin()):
        return jsonify({'error': 'Blog post not found'}), 404
    return jsonify(post)


@blog_bp.route('/api/blog/posts', methods=['POST'])
@require_admin
def create_post():
    try:
        data = _clean_post(validate_blog_post(request.get_json(silent=True)))
    except ValidationError as e:
        return jsonify({'error': 'Invalid blog post data', 'errors': e.errors}), 400

    if not data.get('excerpt'):
        data['excerpt'] = make_excerpt(data['content'])

    try:
        post = get_storage().create_blog_post(data, get_user_id())
    except Exception as e:
        logger.error(f"Failed to create blog post: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to create blog post'}), 500

    logger.info(f"Blog post {post['id']} created by {get_user_id()}")
    return jsonify(post), 201


@blog_bp.route('/api/blog/posts/<post_id>', methods=['PUT'])
@require_admin
def update_post(post_id):
    try:
        updates = _clean_post(validate_blog_post(request.get_json(silent=True), partial=True))
    except ValidationError as e:
        return jsonify({'error': 'Invalid blog post data', 'errors': e.errors}), 400

    if 'content' in updates and not updates.get('excerpt'):
        updates['excerpt'] = make_excerpt(updates['content'])

    try:
        post = get_storage().update_blog_post(post_id, updates)
    except Exception as e:
        logger.error(f"Failed to update blog post {post_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to update blog post'}), 500

    if not post:
        return jsonify({'error': 'Blog post not found'}), 404
    return jsonify(post)


@blog_bp.route('/api/blog/posts/<post_id>', methods=['DELETE'])
@require_admin
def delete_post(post_id):
    try:
        deleted = get_storage().delete_blog_post(post_id)
    except Exception as e:
        logger.error(f"Failed to delete blog post {post_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to delete blog post'}), 500

    if not deleted:
        return jsonify({'error': 'Blog post not found'}), 404
    return '', 204


@blog_bp.route('/api/blog/upload-image', methods=['POST'])
@require_admin
def upload_image():
    try:
        result = save_image_upload(request.files.get('image'), prefix='blog')
    except UploadError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Blog image upload failed: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to upload image'}), 500
    return jsonify(result)
