# api/gifts.py
"""
Gift recommendation and saved gift endpoints
"""

from flask import Blueprint, request, jsonify
import logging
import time

from core.storage import get_storage
from core.validation import ValidationError, validate_saved_gift
from middleware.security import get_owner_id, get_user_id
from services.recommendations import RecommendationError, generate_gift_recommendations, parse_budget

gifts_bp = Blueprint('gifts', __name__)
logger = logging.getLogger(__name__)

AI_OPERATION = 'ai_recommendation'


def _record_performance(response_time_ms, success, user_id, metadata, error_message=None):
    try:
        get_storage().create_performance_metric({
            'operation': AI_OPERATION,
            'responseTime': response_time_ms,
            'success': success,
            'errorMessage': error_message,
            'metadata': metadata,
        }, user_id)
    except Exception as e:
        logger.warning(f"Failed to record performance metric: {str(e)}")


@gifts_bp.route('/api/gift-recommendations', methods=['POST'])
def gift_recommendations():
    """
    Recommend gifts for one of the caller's friends

    Body: {friendId, budget}; budget may be a number or a string like '£50'
    """
    data = request.get_json(silent=True) or {}
    friend_id = data.get('friendId')
    if not friend_id or data.get('budget') in (None, ''):
        return jsonify({'error': 'Friend ID and budget are required'}), 400

    try:
        budget = parse_budget(data.get('budget'))
    except RecommendationError as e:
        return jsonify({'error': str(e)}), 400

    owner_id = get_owner_id()
    user_id = get_user_id()
    friend = get_storage().get_friend(friend_id, owner_id)
    if not friend:
        return jsonify({'error': 'Friend not found'}), 404

    metadata = {'friendId': friend_id, 'budget': budget}
    start_time = time.time()
    try:
        recommendations = generate_gift_recommendations(
            friend.get('personalityTraits') or [],
            friend.get('interests') or [],
            budget,
            friend['name'],
            friend.get('currency') or 'USD',
            friend.get('country') or 'United States',
            friend.get('notes'),
        )
    except RecommendationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        elapsed = int((time.time() - start_time) * 1000)
        logger.error(f"Failed to generate gift recommendations: {str(e)}", exc_info=True)
        if user_id:
            _record_performance(elapsed, False, user_id, metadata, str(e))
        return jsonify({'error': 'Failed to generate gift recommendations'}), 500

    elapsed = int((time.time() - start_time) * 1000)
    metadata['recommendationCount'] = len(recommendations)
    _record_performance(elapsed, True, user_id, metadata)
    logger.info(f"Generated {len(recommendations)} recommendations for friend {friend_id} in {elapsed}ms")
    return jsonify(recommendations)


@gifts_bp.route('/api/saved-gifts', methods=['GET'])
def list_saved_gifts():
    try:
        return jsonify(get_storage().get_all_saved_gifts(get_owner_id()))
    except Exception as e:
        logger.error(f"Failed to fetch saved gifts: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch saved gifts'}), 500


@gifts_bp.route('/api/saved-gifts/friend/<friend_id>', methods=['GET'])
def list_saved_gifts_for_friend(friend_id):
    try:
        return jsonify(get_storage().get_saved_gifts_by_friend(friend_id, get_owner_id()))
    except Exception as e:
        logger.error(f"Failed to fetch saved gifts for friend {friend_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch saved gifts'}), 500


@gifts_bp.route('/api/saved-gifts', methods=['POST'])
def save_gift():
    try:
        data = validate_saved_gift(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': 'Invalid saved gift data', 'errors': e.errors}), 400

    owner_id = get_owner_id()
    storage = get_storage()
    try:
        if not storage.get_friend(data['friendId'], owner_id):
            return jsonify({'error': 'Friend not found'}), 404
        gift = storage.create_saved_gift(data, owner_id)
    except Exception as e:
        logger.error(f"Failed to save gift: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to save gift'}), 500

    return jsonify(gift), 201


@gifts_bp.route('/api/saved-gifts/<gift_id>', methods=['DELETE'])
def delete_saved_gift(gift_id):
    try:
        deleted = get_storage().delete_saved_gift(gift_id, get_owner_id())
    except Exception as e:
        logger.error(f"Failed to delete saved gift {gift_id}: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to delete saved gift'}), 500

    if not deleted:
        return jsonify({'error': 'Saved gift not found'}), 404
    return '', 204
