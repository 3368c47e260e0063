# routes/spa.py
"""
Serves the built React client when it is present
"""

import os

from flask import Blueprint, current_app, jsonify, send_from_directory

spa_bp = Blueprint('spa', __name__)


def client_build_dir():
    build_dir = current_app.config.get('CLIENT_BUILD_DIR')
    if build_dir and os.path.isfile(os.path.join(build_dir, 'index.html')):
        return build_dir
    return None


@spa_bp.route('/', defaults={'path': ''})
@spa_bp.route('/<path:path>')
def serve_client(path):
    """Static asset if it exists, otherwise index.html for client-side routing"""
    if path.startswith('api/'):
        return jsonify({'error': 'Resource not found'}), 404

    build_dir = client_build_dir()
    if build_dir is None:
        if not path:
            return jsonify({'service': current_app.config.get('APP_NAME', 'GiftGenie API'), 'status': 'ok'})
        return jsonify({'error': 'Resource not found'}), 404

    if path and os.path.isfile(os.path.join(build_dir, path)):
        return send_from_directory(build_dir, path)
    return send_from_directory(build_dir, 'index.html')
