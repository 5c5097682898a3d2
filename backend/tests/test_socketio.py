from arena import socketio
from conftest import commit_action


def events_named(client, name):
    return [pkt['args'][0] for pkt in client.get_received('/ws') if pkt['name'] == name]


def test_socket_connect(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    assert events_named(sio_client, 'connected')


def test_join_match_room_requires_participant(flask_app, private_match, carol):
    outsider = socketio.test_client(flask_app, flask_test_client=carol.client, namespace='/ws')
    outsider.get_received('/ws')
    outsider.emit('join_match', {'match_id': private_match}, namespace='/ws')
    errors = events_named(outsider, 'error')
    assert errors and errors[0]['message'] == 'Not part of this match'
    outsider.disconnect(namespace='/ws')


def test_match_updates_are_pushed(sio_client, private_match, bob):
    sio_client.get_received('/ws')
    sio_client.emit('join_match', {'match_id': private_match}, namespace='/ws')
    joined = events_named(sio_client, 'joined')
    assert joined[0]['room'] == f'match:{private_match}'
    assert joined[0]['status'] == 'in_progress'

    commit_action(bob, private_match, 1, 'attack')
    updates = events_named(sio_client, 'match_update')
    assert updates == [{
        'match_id': private_match,
        'event': 'committed',
        'status': 'in_progress',
        'current_round': 1,
        'turn': 1,
        'both_committed': False,
    }]

    sio_client.emit('leave_match', {'match_id': private_match}, namespace='/ws')
    assert events_named(sio_client, 'left')
    commit_action(bob, private_match, 1, 'block')
    assert events_named(sio_client, 'match_update') == []


def test_match_found_reaches_waiting_player(sio_client, alice, bob):
    sio_client.get_received('/ws')
    alice.post('/api/matchmaking/join', max_health=100, damage=30)
    match_id = bob.post('/api/matchmaking/join', max_health=100, damage=30).get_json()['match_id']
    assert events_named(sio_client, 'match_found') == [{'match_id': match_id}]


def test_ping(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    assert events_named(sio_client, 'pong') == [{'n': 1}]


def test_leave_match_room_requires_participant(flask_app, private_match, carol):
    outsider = socketio.test_client(flask_app, flask_test_client=carol.client, namespace='/ws')
    outsider.get_received('/ws')
    outsider.emit('leave_match', {'match_id': private_match}, namespace='/ws')
    received = outsider.get_received('/ws')
    assert [pkt['name'] for pkt in received] == ['error']
    assert received[0]['args'][0]['message'] == 'Not part of this match'
    outsider.disconnect(namespace='/ws')
