from dataclasses import asdict
from flask import Blueprint, current_app, jsonify, request
from flask_wtf.csrf import generate_csrf
from classbook import BACKEND_EXTENSION
from classbook.results import ErrorKind

bp = Blueprint('api', __name__, url_prefix='/api')

_ERROR_STATUS = {
    ErrorKind.MISSING_ARGUMENT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE: 409,
    ErrorKind.DUPLICATE_TARGET: 409,
    ErrorKind.LOCKED: 423,
    ErrorKind.BACKEND_FAILURE: 502,
}


def get_store():
    """The record store resolved at startup. Raises BackendUnavailable."""
    return current_app.extensions[BACKEND_EXTENSION].get_store()


def _payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _result_response(result, success_status=200):
    if result.ok:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), _ERROR_STATUS.get(result.error, 400)


@bp.route('/csrf-token')
def csrf_token():
    return jsonify({'csrf_token': generate_csrf()})


# --- Metadata ---

@bp.route('/meta', methods=['GET'])
def get_meta():
    return jsonify(get_store().load_metadata().to_dict())


@bp.route('/meta', methods=['PUT'])
def save_meta():
    return _result_response(get_store().save_metadata(_payload()))


@bp.route('/ensure-defaults', methods=['POST'])
def ensure_defaults():
    seed = _payload().get('seed')
    return _result_response(get_store().ensure_defaults(seed=seed))


# --- Entries ---

@bp.route('/entries', methods=['GET'])
def list_entries():
    return jsonify([asdict(e) for e in get_store().list_entries()])


@bp.route('/entries', methods=['POST'])
def add_entry():
    return _result_response(get_store().add_entry(_payload()), 201)


@bp.route('/entries/<entry_id>', methods=['GET'])
def get_entry(entry_id):
    entry = get_store().get_entry(entry_id)
    if entry is None:
        return jsonify({'ok': False, 'reason': 'not found'}), 404
    return jsonify(asdict(entry))


@bp.route('/entries/<entry_id>', methods=['PATCH'])
def update_entry(entry_id):
    return _result_response(get_store().update_entry(entry_id, _payload()))


@bp.route('/entries/<entry_id>', methods=['DELETE'])
def delete_entry(entry_id):
    return _result_response(get_store().delete_entry_by_id(entry_id))


@bp.route('/entries/<entry_id>/toggle-lock', methods=['POST'])
def toggle_lock(entry_id):
    return _result_response(get_store().toggle_lock_entry(entry_id))


# --- Courses ---

@bp.route('/courses', methods=['POST'])
def add_course():
    data = _payload()
    return _result_response(
        get_store().add_course(data.get('name', ''), data.get('students')), 201
    )


@bp.route('/courses/<course_id>', methods=['DELETE'])
def delete_course(course_id):
    return _result_response(get_store().delete_course(course_id))


@bp.route('/courses/<course_id>/students', methods=['GET'])
def get_students(course_id):
    return jsonify(get_store().get_students_for_course(course_id))


@bp.route('/courses/<course_id>/students', methods=['PUT'])
def update_students(course_id):
    students = _payload().get('students')
    return _result_response(get_store().update_course_students(course_id, students))
