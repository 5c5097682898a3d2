import os
import sys
import pytest

# Ensure the backend root (containing the `arena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from arena import create_app, db, socketio
from arena.services.battle.commitment import commit, generate_salt


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    ROUNDS_TO_WIN = 3
    QUEUE_TIMEOUT_SEC = 60
    RATING_TOLERANCE = 200
    DEFAULT_RATING = 1200
    WRITE_RETRY_ATTEMPTS = 3


# Stats used by most tests: side A and side B of a private match
ALICE_STATS = {'max_health': 200, 'damage': 30, 'character_id': 1}
BOB_STATS = {'max_health': 180, 'damage': 40, 'character_id': 2}


class Player:
    """A registered user with their own logged-in test client."""

    def __init__(self, client, user):
        self.client = client
        self.user = user
        self.id = user['id']

    def post(self, path, **payload):
        return self.client.post(path, json=payload)

    def get(self, path):
        return self.client.get(path)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    # Requests push their own app context (and so their own session and
    # Flask-Login user); tests open one explicitly to touch the database.
    with application.app_context():
        # Ensure models are imported so tables are created
        import arena.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_player(flask_app):
    def _make(username, guest=False):
        test_client = flask_app.test_client()
        if guest:
            res = test_client.post('/api/auth/guest')
        else:
            res = test_client.post('/api/auth/register', json={'username': username, 'password': 'password'})
        assert res.status_code == 201
        return Player(test_client, res.get_json()['user'])
    return _make


@pytest.fixture()
def alice(make_player):
    return make_player('alice')


@pytest.fixture()
def bob(make_player):
    return make_player('bob')


@pytest.fixture()
def carol(make_player):
    return make_player('carol')


def start_private_match(host, guest, host_stats=None, guest_stats=None):
    res = host.post('/api/matches/private', **(host_stats or ALICE_STATS))
    assert res.status_code == 201
    created = res.get_json()
    res = guest.post('/api/matches/join', private_code=created['private_code'], **(guest_stats or BOB_STATS))
    assert res.status_code == 200
    return created['match_id']


@pytest.fixture()
def private_match(alice, bob):
    return start_private_match(alice, bob)


def commit_action(player, match_id, round_number, action):
    salt = generate_salt()
    res = player.post(
        f'/api/matches/{match_id}/commit',
        round_number=round_number, commit_hash=commit(action, salt), salt=salt,
    )
    assert res.status_code == 200, res.get_json()
    return salt


def reveal_action(player, match_id, round_number, action):
    res = player.post(f'/api/matches/{match_id}/reveal', round_number=round_number, action=action)
    assert res.status_code == 200, res.get_json()
    return res.get_json()


@pytest.fixture()
def play_turn(alice, bob):
    """Commit, reveal and resolve one turn for alice (side A) and bob (side B)."""
    def _play(match_id, round_number, action_a, action_b, side_a=None, side_b=None):
        side_a = side_a or alice
        side_b = side_b or bob
        commit_action(side_a, match_id, round_number, action_a)
        commit_action(side_b, match_id, round_number, action_b)
        reveal_action(side_a, match_id, round_number, action_a)
        reveal_action(side_b, match_id, round_number, action_b)
        res = side_a.post(f'/api/matches/{match_id}/resolve', round_number=round_number)
        assert res.status_code == 200, res.get_json()
        return res.get_json()
    return _play


@pytest.fixture()
def sio_client(flask_app, alice):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=alice.client,
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
