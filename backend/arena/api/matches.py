from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from arena.errors import ValidationError
from arena.services.battle import progression, turns


matches = Blueprint('matches', __name__)


def _payload():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _int_field(data, key, required=True):
    value = data.get(key)
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f'{key} must be a positive integer', field=key)
    return value


@matches.route('/private', methods=['POST'])
@login_required
def create_private_match():
    stats = progression.validate_stats(_payload())
    match = progression.create_private_match(current_user, stats)
    return jsonify({
        'match_id': match.id,
        'private_code': match.private_code,
        'match': match.to_dict(),
    }), 201


@matches.route('/join', methods=['POST'])
@login_required
def join_private_match():
    data = _payload()
    stats = progression.validate_stats(data)
    match = progression.join_private_match(data.get('private_code'), current_user, stats)
    return jsonify(progression.get_match_state(match.id, current_user.id))


@matches.route('/<int:match_id>/state', methods=['GET'])
@login_required
def get_match_state(match_id):
    return jsonify(progression.get_match_state(match_id, current_user.id))


@matches.route('/<int:match_id>/commit', methods=['POST'])
@login_required
def commit_action(match_id):
    data = _payload()
    round_number = _int_field(data, 'round_number')
    if not data.get('commit_hash'):
        raise ValidationError('commit_hash is required', field='commit_hash')
    turn = _int_field(data, 'turn', required=False)
    result = turns.submit_commit(
        match_id, current_user.id, round_number, data.get('commit_hash'), data.get('salt'), turn
    )
    return jsonify(result)


@matches.route('/<int:match_id>/reveal', methods=['POST'])
@login_required
def reveal_action(match_id):
    data = _payload()
    round_number = _int_field(data, 'round_number')
    if not data.get('action'):
        raise ValidationError('action is required', field='action')
    turn = _int_field(data, 'turn', required=False)
    result = turns.submit_reveal(match_id, current_user.id, round_number, data.get('action'), data.get('salt'), turn)
    return jsonify(result)


@matches.route('/<int:match_id>/resolve', methods=['POST'])
@login_required
def resolve_turn(match_id):
    data = _payload()
    round_number = _int_field(data, 'round_number')
    turn = _int_field(data, 'turn', required=False)
    return jsonify(turns.resolve_turn(match_id, current_user.id, round_number, turn))


@matches.route('/<int:match_id>/ready', methods=['POST'])
@login_required
def ready_for_next_round(match_id):
    data = _payload()
    round_number = _int_field(data, 'round_number')
    return jsonify(progression.ready_for_next_round(match_id, current_user.id, round_number))


@matches.route('/<int:match_id>/abandon', methods=['POST'])
@login_required
def abandon_match(match_id):
    match = progression.abandon_match(match_id, current_user.id)
    return jsonify(match.to_dict())
