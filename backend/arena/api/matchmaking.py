from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from arena.services import matchmaking as queue
from arena.services.battle import progression


matchmaking = Blueprint('matchmaking', __name__)


@matchmaking.route('/join', methods=['POST'])
@login_required
def join_queue():
    data = request.get_json(silent=True) or {}
    stats = progression.validate_stats(data)
    return jsonify(queue.join(current_user, stats))


@matchmaking.route('/status', methods=['GET'])
@login_required
def queue_status():
    return jsonify(queue.queue_status(current_user))


@matchmaking.route('/cancel', methods=['POST'])
@login_required
def cancel_queue():
    return jsonify(queue.cancel(current_user))
