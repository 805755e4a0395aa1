from datetime import datetime

import pytz
from flask import Blueprint, jsonify, request, current_app

from services.checkin_service import CheckInService
from services.exceptions import ServiceError, CheckInValidationError


checkins_bp = Blueprint('checkins', __name__)

checkin_service = CheckInService()


def _error(code, message, status_code):
    return jsonify({'success': False, 'error': {'code': code, 'message': message}}), status_code


def _service_error(error):
    if error.status_code >= 500:
        current_app.logger.error(f'Check-in request failed: {error.message}')
    return _error(error.code, error.message, error.status_code)


def _current_user_id():
    # Identity is established upstream; the gateway forwards the authenticated user id
    return (request.headers.get('X-User-Id') or '').strip() or None


def _parse_timestamp(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (TypeError, ValueError, AttributeError):
        raise CheckInValidationError('clientTimestamp must be an ISO 8601 datetime')


@checkins_bp.route('', methods=['POST'])
@checkins_bp.route('/', methods=['POST'])
def create_check_in():
    user_id = _current_user_id()
    if not user_id:
        return _error('UNAUTHORIZED', 'Authentication required', 401)

    data = request.get_json(silent=True) or {}
    goal_id = data.get('goalId')
    if not isinstance(goal_id, int) or isinstance(goal_id, bool):
        return _error('VALIDATION_ERROR', 'Goal ID is required', 400)

    try:
        check_in = checkin_service.record_check_in(
            goal_id=goal_id,
            user_id=user_id,
            now_utc=datetime.now(pytz.UTC),
            status=data.get('status'),
            comment=data.get('comment'),
            proof_url=data.get('proofUrl'),
            client_timestamp=_parse_timestamp(data.get('clientTimestamp'))
        )
    except ServiceError as e:
        return _service_error(e)

    return jsonify({'success': True, 'data': check_in}), 201


@checkins_bp.route('/today/<int:goal_id>', methods=['GET'])
def today(goal_id):
    user_id = _current_user_id()
    if not user_id:
        return _error('UNAUTHORIZED', 'Authentication required', 401)

    try:
        status = checkin_service.today_status(goal_id, user_id, datetime.now(pytz.UTC))
    except ServiceError as e:
        return _service_error(e)

    return jsonify({'success': True, 'data': status})


@checkins_bp.route('/<int:goal_id>', methods=['GET'])
def list_check_ins(goal_id):
    user_id = _current_user_id()
    if not user_id:
        return _error('UNAUTHORIZED', 'Authentication required', 401)

    limit = request.args.get('limit', 30, type=int)
    offset = request.args.get('offset', 0, type=int)

    try:
        check_ins = checkin_service.list_check_ins(goal_id, user_id, limit=limit, offset=offset)
    except ServiceError as e:
        return _service_error(e)

    return jsonify({'success': True, 'data': [c.to_dict() for c in check_ins]})
