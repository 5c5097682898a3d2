from flask_socketio import join_room, leave_room, emit
from flask_login import current_user
from arena import socketio
from arena.models import Match
from arena.notifications import NAMESPACE, match_room, player_room


def handle_connect(auth=None):
    # Personal room receives match_found when someone else pairs with us
    if current_user.is_authenticated:
        join_room(player_room(current_user.id))
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def _requested_match(data):
    match_id = (data or {}).get('match_id')
    if match_id is None:
        emit('error', {'message': 'match_id is required'})
        return None
    if not current_user.is_authenticated:
        emit('error', {'message': 'Unauthorized'})
        return None
    match = Match.query.filter_by(id=match_id).first()
    if not match or match.side_of(current_user.id) is None:
        emit('error', {'message': 'Not part of this match'})
        return None
    return match


def handle_join_match(data):
    match = _requested_match(data)
    if match is None:
        return
    room = match_room(match.id)
    join_room(room)
    emit('joined', {'room': room, 'status': match.status, 'current_round': match.current_round})


def handle_leave_match(data):
    match = _requested_match(data)
    if match is None:
        return
    room = match_room(match.id)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_match', handle_join_match, namespace=namespace)
        socketio.on_event('leave_match', handle_leave_match, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
