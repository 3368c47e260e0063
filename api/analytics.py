# api/analytics.py
"""
Analytics API endpoints: event collection and the admin dashboard
"""

from flask import Blueprint, request, jsonify
import logging

from core.storage import get_storage
from core.validation import (
    ValidationError, validate_analytics_event, validate_feedback, validate_performance_metric
)
from middleware.security import get_user_id, require_admin
from services.analytics import get_analytics_service

# Create blueprint
analytics_bp = Blueprint('analytics', __name__)
logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000


def _limit_arg():
    try:
        limit = int(request.args.get('limit', DEFAULT_LIMIT))
    except (TypeError, ValueError):
        limit = DEFAULT_LIMIT
    return max(1, min(limit, MAX_LIMIT))


@analytics_bp.route('/api/analytics/events', methods=['POST'])
def track_event():
    """Record a client analytics event; guests allowed"""
    try:
        data = validate_analytics_event(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': 'Invalid analytics event', 'errors': e.errors}), 400

    data['ipAddress'] = data.get('ipAddress') or request.remote_addr
    data['userAgent'] = data.get('userAgent') or request.headers.get('User-Agent')

    try:
        event = get_storage().create_analytics_event(data, get_user_id())
    except Exception as e:
        logger.error(f"Failed to record analytics event: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to record event'}), 500
    return jsonify(event), 201


@analytics_bp.route('/api/analytics/feedback', methods=['POST'])
def submit_feedback():
    try:
        data = validate_feedback(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': 'Invalid feedback data', 'errors': e.errors}), 400

    try:
        feedback = get_storage().create_feedback(data, get_user_id())
    except Exception as e:
        logger.error(f"Failed to record feedback: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to record feedback'}), 500
    return jsonify(feedback), 201


@analytics_bp.route('/api/analytics/performance', methods=['POST'])
def record_performance():
    try:
        data = validate_performance_metric(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': 'Invalid performance metric', 'errors': e.errors}), 400

    try:
        metric = get_storage().create_performance_metric(data, get_user_id())
    except Exception as e:
        logger.error(f"Failed to record performance metric: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to record performance metric'}), 500
    return jsonify(metric), 201


@analytics_bp.route('/api/analytics/events', methods=['GET'])
@require_admin
def list_events():
    try:
        return jsonify(get_storage().get_analytics_events(_limit_arg()))
    except Exception as e:
        logger.error(f"Failed to fetch analytics events: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch analytics events'}), 500


@analytics_bp.route('/api/analytics/feedback', methods=['GET'])
@require_admin
def list_feedback():
    try:
        return jsonify(get_storage().get_feedback(_limit_arg()))
    except Exception as e:
        logger.error(f"Failed to fetch feedback: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch feedback'}), 500


@analytics_bp.route('/api/analytics/performance', methods=['GET'])
@require_admin
def list_performance():
    try:
        metrics = get_storage().get_performance_metrics(_limit_arg(), request.args.get('operation') or None)
    except Exception as e:
        logger.error(f"Failed to fetch performance metrics: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to fetch performance metrics'}), 500
    return jsonify(metrics)


@analytics_bp.route('/api/analytics/summary', methods=['GET'])
@require_admin
def analytics_summary():
    """Aggregated dashboard metrics; ?refresh=true bypasses the cache"""
    try:
        force_refresh = request.args.get('refresh', 'false').lower() == 'true'
        return jsonify(get_analytics_service().get_summary(force_refresh=force_refresh))
    except Exception as e:
        logger.error(f"Failed to build analytics summary: {str(e)}", exc_info=True)
        return jsonify({'error': 'Failed to build analytics summary'}), 500
