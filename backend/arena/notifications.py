"""Push notifications for match state changes.

Clients subscribe over Socket.IO (``/ws``) and fall back to polling
``GET /api/matches/<id>/state`` or ``GET /api/matchmaking/status``; either way
they eventually observe the latest committed state. Payloads are hints that
say *what* changed; clients re-fetch state for details.
"""

from arena import socketio

NAMESPACE = '/ws'


def match_room(match_id):
    return f"match:{match_id}"


def player_room(player_id):
    return f"player:{player_id}"


def publish_match_update(match, event, **extra):
    payload = {
        'match_id': match.id,
        'event': event,
        'status': match.status,
        'current_round': match.current_round,
    }
    payload.update(extra)
    socketio.emit('match_update', payload, to=match_room(match.id), namespace=NAMESPACE)


def publish_match_found(match):
    for player_id in (match.player_a_id, match.player_b_id):
        if player_id is not None:
            socketio.emit('match_found', {'match_id': match.id}, to=player_room(player_id), namespace=NAMESPACE)
