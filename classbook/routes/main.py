from flask import Blueprint, current_app, jsonify
from classbook import BACKEND_EXTENSION

bp = Blueprint('main', __name__)


@bp.route('/health')
def health():
    backend = current_app.extensions[BACKEND_EXTENSION]
    if not backend.available:
        return jsonify({'status': 'degraded', 'reason': backend.reason}), 503
    return jsonify({'status': 'ok'}), 200
