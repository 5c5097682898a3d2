"""Races between players writing the same rows.

Each test interleaves a second caller inside the first caller's transaction:
the first caller has already read the rows when the second commits, so its
own write loses the version check (or the queue claim) and must recover.
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from arena import create_app, db
from arena.errors import ConcurrencyConflict
from arena.models import Match, QueueEntry, Round, User
from arena.services import matchmaking
from arena.services.battle import progression, turns
from arena.services.battle.commitment import commit, generate_salt
from conftest import TestConfig, commit_action, reveal_action, start_private_match


@pytest.fixture()
def flask_app(tmp_path):
    # Separate sessions need separate connections, so use a file database
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'arena.db'}"

    application = create_app(FileConfig)
    with application.app_context():
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def interleave(monkeypatch, module, name, competing_call, before=False):
    """Run ``competing_call`` right after the first call to ``module.name``
    returns, while the caller still holds the rows it has read. With
    ``before`` it runs just ahead of that call instead."""
    real = getattr(module, name)
    state = {'fired': False, 'result': None}

    def wrapper(*args, **kwargs):
        if before and not state['fired']:
            state['fired'] = True
            state['result'] = competing_call()
        value = real(*args, **kwargs)
        if not state['fired']:
            state['fired'] = True
            state['result'] = competing_call()
        return value

    monkeypatch.setattr(module, name, wrapper)
    return state


def reveal_both(match_id, alice, bob, action_a, action_b):
    commit_action(alice, match_id, 1, action_a)
    commit_action(bob, match_id, 1, action_b)
    reveal_action(alice, match_id, 1, action_a)
    reveal_action(bob, match_id, 1, action_b)


def test_concurrent_resolve_computes_once(flask_app, monkeypatch, alice, bob):
    match_id = start_private_match(alice, bob)
    reveal_both(match_id, alice, bob, 'attack', 'block')

    def bob_resolves():
        with flask_app.app_context():
            return turns.resolve_turn(match_id, bob.id, 1)

    race = interleave(monkeypatch, turns, 'resolve', bob_resolves)
    with flask_app.app_context():
        result = turns.resolve_turn(match_id, alice.id, 1)

    winner = race['result']
    assert winner['cached'] is False
    assert result['cached'] is True
    assert result['turn'] == winner['turn'] == 1
    assert (result['health_after_a'], result['health_after_b']) == (200, 171)
    assert (winner['health_after_a'], winner['health_after_b']) == (200, 171)

    with flask_app.app_context():
        rnd = Round.query.filter_by(match_id=match_id, round_number=1).one()
        assert len(rnd.load_turn_log()) == 1
        assert rnd.turn_number == 2
        assert rnd.health_before_b == 171


def test_concurrent_ready_creates_one_round(flask_app, monkeypatch, alice, bob, play_turn):
    match_id = start_private_match(
        alice, bob,
        host_stats={'max_health': 100, 'damage': 30},
        guest_stats={'max_health': 100, 'damage': 60},
    )
    play_turn(match_id, 1, 'attack', 'attack')
    assert play_turn(match_id, 1, 'attack', 'attack')['round_ended'] is True

    def bob_ready():
        with flask_app.app_context():
            return progression.ready_for_next_round(match_id, bob.id, 1)

    race = interleave(monkeypatch, progression, 'load_round', bob_ready)
    with flask_app.app_context():
        result = progression.ready_for_next_round(match_id, alice.id, 1)

    assert race['result'] == {'both_ready': False, 'status': 'waiting'}
    assert result == {'both_ready': True, 'next_round_number': 2}

    with flask_app.app_context():
        assert db.session.get(Match, match_id).current_round == 2
        assert Round.query.filter_by(match_id=match_id).count() == 2


def test_concurrent_commits_both_land(flask_app, monkeypatch, alice, bob):
    match_id = start_private_match(alice, bob)

    def commit_as(player_id, action):
        salt = generate_salt()
        with flask_app.app_context():
            return turns.submit_commit(match_id, player_id, 1, commit(action, salt), salt)

    race = interleave(monkeypatch, turns, '_current_round_for_turn', lambda: commit_as(bob.id, 'heal'))
    result = commit_as(alice.id, 'counter')

    assert race['result']['both_committed'] is False
    # alice retried after losing the version check and saw bob's commit
    assert result['both_committed'] is True

    state = alice.get(f'/api/matches/{match_id}/state').get_json()
    assert state['round']['has_committed_a'] is True
    assert state['round']['has_committed_b'] is True
    assert state['round']['turn_status'] == 'awaiting_reveals'


def test_conflict_surfaces_after_retries(flask_app, monkeypatch, alice, bob):
    match_id = start_private_match(alice, bob)
    reveal_both(match_id, alice, bob, 'heal', 'heal')
    attempts = []

    def always_stale(*args, **kwargs):
        attempts.append(args)
        raise StaleDataError('version mismatch')

    monkeypatch.setattr(turns, 'resolve', always_stale)
    res = alice.post(f'/api/matches/{match_id}/resolve', round_number=1)
    assert res.status_code == 409
    body = res.get_json()
    assert body['code'] == 'concurrency_conflict'
    assert body['retryable'] is True
    assert len(attempts) == TestConfig.WRITE_RETRY_ATTEMPTS

    with flask_app.app_context():
        with pytest.raises(ConcurrencyConflict):
            turns.resolve_turn(match_id, bob.id, 1)
        rnd = Round.query.filter_by(match_id=match_id, round_number=1).one()
        assert rnd.health_after_a is None
        assert rnd.turn_number == 1


QUEUE_STATS = {'max_health': 100, 'damage': 30}


def queue_up(flask_app, *players):
    # Enqueue without pairing so every player is waiting before the race
    with flask_app.app_context():
        for player in players:
            user = db.session.get(User, player.id)
            matchmaking.enqueue(user, user.rating, QUEUE_STATS)


def find_as(flask_app, player):
    with flask_app.app_context():
        user = db.session.get(User, player.id)
        return matchmaking.find_match(user, user.rating)


def test_competing_search_claims_opponent_first(flask_app, monkeypatch, alice, bob, carol):
    queue_up(flask_app, alice, bob, carol)

    # bob has picked alice as his opponent when carol pairs with her
    race = interleave(monkeypatch, matchmaking, '_claim_pair',
                      lambda: find_as(flask_app, carol), before=True)
    result = find_as(flask_app, bob)

    winner = race['result']
    assert winner['matched'] is True
    assert winner['match']['player_a_id'] == alice.id
    assert winner['match']['player_b_id'] == carol.id
    assert result['matched'] is False
    assert result['queued'] is True

    with flask_app.app_context():
        assert Match.query.count() == 1
        assert [entry.player_id for entry in QueueEntry.query.all()] == [bob.id]


def test_search_returns_match_made_by_other_caller(flask_app, monkeypatch, alice, bob):
    queue_up(flask_app, alice, bob)

    # alice pairs with bob while bob is about to claim her entry
    race = interleave(monkeypatch, matchmaking, '_claim_pair',
                      lambda: find_as(flask_app, alice), before=True)
    result = find_as(flask_app, bob)

    winner = race['result']
    assert winner['matched'] is True
    assert result['matched'] is True
    assert result['match_id'] == winner['match_id']
    assert result['match']['player_a_id'] == bob.id
    assert result['match']['player_b_id'] == alice.id

    with flask_app.app_context():
        assert Match.query.count() == 1
        assert QueueEntry.query.count() == 0
