"""Round coordinator: the commit -> reveal -> resolve cycle of one turn.

Turn states are derived from the round row (see ``Round.turn_status``):

    awaiting_commits -> awaiting_reveals -> resolved

A resolved turn either ends the round (a side reached 0 health) and stays
resolved, or is logged to ``Round.turn_log`` and reset so the next turn
starts in ``awaiting_commits`` with health carried forward.

Every entry point is safe to call again with the same arguments: repeated
commits/reveals are no-ops, and resolving an already resolved turn returns
the logged payload instead of recomputing it.
"""

import re

from flask import current_app

from arena import db
from arena.errors import CommitMismatch, NoCommitmentFound, NotFoundError, StateError, ValidationError
from arena.models import IN_PROGRESS, RESOLVED, SIDES, other_side, utcnow
from arena.notifications import publish_match_update
from . import commitment, progression
from .access import load_match, load_round, run_with_retry
from .resolution import Action, apply_health, resolve

_HASH_RE = re.compile(r'^[0-9a-fA-F]{64}$')
MAX_SALT_LENGTH = 128


def _validate_commit_hash(commit_hash):
    if not isinstance(commit_hash, str) or not _HASH_RE.match(commit_hash):
        raise ValidationError('commit_hash must be a 64-character hex SHA-256 digest')
    return commit_hash.lower()


def _validate_salt(salt):
    min_chars = 2 * int(current_app.config.get('MIN_SALT_BYTES', 16))
    if not isinstance(salt, str) or not (min_chars <= len(salt) <= MAX_SALT_LENGTH):
        raise ValidationError(f'salt must be a string of {min_chars}-{MAX_SALT_LENGTH} characters')
    return salt


def _current_round_for_turn(match, round_number, turn=None):
    if match.status != IN_PROGRESS:
        raise StateError(f'Match is {match.status}', status=match.status)
    if round_number != match.current_round:
        raise StateError('Not the current round', current_round=match.current_round)
    rnd = load_round(match, round_number, lock=True)
    if rnd.has_ended:
        raise StateError('Round has already ended', round_winner_id=rnd.round_winner_id)
    if turn is not None and turn != rnd.turn_number:
        raise StateError('Turn has not started', turn=turn, current_turn=rnd.turn_number)
    return rnd


def _replayed_turn(match, side, round_number, turn=None, commit_hash=None):
    """Number of the already resolved turn a delayed request belongs to.

    With ``turn`` the answer is explicit. Without it, a commitment whose hash
    was logged for this side in a resolved turn is a replay of that turn; a
    fresh salt makes every genuine commitment unique.
    """
    if round_number > match.current_round:
        return None
    rnd = load_round(match, round_number)
    if turn is not None:
        if turn < rnd.turn_number or (turn == rnd.turn_number and rnd.turn_status == RESOLVED):
            return turn
        return None
    if commit_hash is not None:
        for entry in rnd.load_turn_log():
            if (entry.get('commit_hashes') or {}).get(side) == commit_hash:
                return entry['turn']
    return None


def submit_commit(match_id, user_id, round_number, commit_hash, salt=None, turn=None):
    """Record the caller's commitment for the current turn.

    A commitment for a turn that has already resolved is acknowledged and
    dropped, so a delayed duplicate never leaks into the next turn.
    """
    commit_hash = _validate_commit_hash(commit_hash)
    if salt is not None:
        salt = _validate_salt(salt)

    def _commit_once():
        match, side = load_match(match_id, user_id, lock=True)
        replayed = _replayed_turn(match, side, round_number, turn, commit_hash)
        if replayed is not None:
            current_app.logger.info(
                f"[commit-replay] match={match.id} round={round_number} turn={replayed} side={side} ignored"
            )
            return match, {'accepted': True, 'both_committed': True, 'turn': replayed, 'resolved': True}, False

        rnd = _current_round_for_turn(match, round_number, turn)
        result = {'accepted': True, 'turn': rnd.turn_number}
        existing = rnd.get('commit_hash', side)
        if existing == commit_hash and (salt is None or salt == rnd.get('salt', side)):
            result['both_committed'] = rnd.both_committed
            return match, result, False
        if rnd.get('action', side):
            raise StateError('Already revealed this turn; commitment is locked', turn=rnd.turn_number)

        rnd.set('commit_hash', side, commit_hash)
        rnd.set('salt', side, salt)
        rnd.set('committed_at', side, utcnow())
        db.session.commit()
        current_app.logger.info(
            f"[commit] match={match.id} round={rnd.round_number} turn={rnd.turn_number} side={side} replaced={bool(existing)}"
        )
        result['both_committed'] = rnd.both_committed
        return match, result, True

    match, result, changed = run_with_retry(_commit_once, 'commit')
    if changed:
        publish_match_update(match, 'committed', turn=result['turn'], both_committed=result['both_committed'])
    return result


def submit_reveal(match_id, user_id, round_number, action, salt=None, turn=None):
    """Disclose the caller's action; accepted only if it matches the commitment."""
    action = Action.parse(action).value

    def _reveal_once():
        match, side = load_match(match_id, user_id, lock=True)
        replayed = _replayed_turn(match, side, round_number, turn)
        if replayed is not None:
            current_app.logger.info(
                f"[reveal-replay] match={match.id} round={round_number} turn={replayed} side={side} ignored"
            )
            return match, {'accepted': True, 'both_revealed': True, 'turn': replayed, 'resolved': True}, False

        rnd = _current_round_for_turn(match, round_number, turn)
        result = {'accepted': True, 'turn': rnd.turn_number}

        commit_hash = rnd.get('commit_hash', side)
        if not commit_hash:
            raise NoCommitmentFound('No commitment found for this turn', turn=rnd.turn_number)
        if not rnd.get('commit_hash', other_side(side)):
            raise StateError('Opponent has not committed yet', turn=rnd.turn_number, retryable=True)

        stored_salt = rnd.get('salt', side)
        use_salt = stored_salt if stored_salt is not None else salt
        if use_salt is None:
            raise ValidationError('salt is required to reveal a commitment made without one')

        if not commitment.verify(action, use_salt, commit_hash):
            current_app.logger.warning(
                f"[reveal-mismatch] match={match.id} round={rnd.round_number} turn={rnd.turn_number} side={side}"
            )
            raise CommitMismatch('Action does not match commitment; commit again for this turn', turn=rnd.turn_number)

        if rnd.get('action', side) == action:
            result['both_revealed'] = rnd.both_revealed
            return match, result, False

        rnd.set('action', side, action)
        rnd.set('salt', side, use_salt)
        rnd.set('revealed_at', side, utcnow())
        db.session.commit()
        current_app.logger.info(
            f"[reveal] match={match.id} round={rnd.round_number} turn={rnd.turn_number} side={side}"
        )
        result['both_revealed'] = rnd.both_revealed
        return match, result, True

    match, result, changed = run_with_retry(_reveal_once, 'reveal')
    if changed:
        publish_match_update(match, 'revealed', turn=result['turn'], both_revealed=result['both_revealed'])
    return result


def _cached(entry):
    payload = dict(entry)
    payload['cached'] = True
    return payload


def _round_winner(match, health_a, health_b):
    # Both at zero in the same turn is a tie: nobody wins and the round goes on
    if health_a <= 0 and health_b > 0:
        return match.player_b_id
    if health_b <= 0 and health_a > 0:
        return match.player_a_id
    return None


def _build_payload(match, rnd, outcome):
    return {
        'match_id': match.id,
        'round_number': rnd.round_number,
        'turn': rnd.turn_number,
        'actions': {'a': rnd.action_a, 'b': rnd.action_b},
        'commit_hashes': {'a': rnd.commit_hash_a, 'b': rnd.commit_hash_b},
        'damage_to_a': outcome.damage_to_a,
        'damage_to_b': outcome.damage_to_b,
        'heal_a': outcome.heal_a,
        'heal_b': outcome.heal_b,
        'health_before_a': rnd.health_before_a,
        'health_before_b': rnd.health_before_b,
        'health_after_a': rnd.health_after_a,
        'health_after_b': rnd.health_after_b,
        'round_winner_id': rnd.round_winner_id,
        'round_ended': rnd.round_winner_id is not None,
        'round_wins_a': match.round_wins_a,
        'round_wins_b': match.round_wins_b,
        'match_winner_id': match.winner_id,
        'match_completed': match.winner_id is not None,
    }


def resolve_turn(match_id, user_id, round_number, turn=None):
    """Resolve the current turn once both reveals are in.

    ``turn`` pins the request to a specific turn so that a retry arriving
    after the next turn has started still gets the first result. Without
    it, a caller that has no reveal in the current turn is replaying its last
    resolve and receives the most recent logged turn.
    """

    def _resolve_once():
        match, side = load_match(match_id, user_id, lock=True)
        rnd = load_round(match, round_number, lock=True)
        requested = rnd.turn_number if turn is None else int(turn)

        if requested > rnd.turn_number or requested < 1:
            raise StateError('Turn has not started', turn=requested, current_turn=rnd.turn_number)
        if requested < rnd.turn_number:
            entry = rnd.logged_turn(requested)
            if entry is None:
                raise NotFoundError('Turn result not found', turn=requested)
            return match, _cached(entry), False

        # Idempotency gate: health_after set means this turn already resolved
        if rnd.turn_status == RESOLVED:
            entry = rnd.logged_turn(rnd.turn_number)
            if entry is None:
                raise NotFoundError('Turn result not found', turn=rnd.turn_number)
            return match, _cached(entry), False

        if turn is None and rnd.get('action', side) is None and rnd.turn_number > 1:
            entry = rnd.logged_turn(rnd.turn_number - 1)
            if entry is not None:
                return match, _cached(entry), False

        if match.status != IN_PROGRESS:
            raise StateError(f'Match is {match.status}', status=match.status)
        if not rnd.both_revealed:
            raise StateError('Both players must reveal before resolving', turn=rnd.turn_number, retryable=True)

        outcome = resolve(
            rnd.action_a, rnd.action_b,
            match.damage_a, match.damage_b,
            match.max_health_a, match.max_health_b,
        )
        for side_key in SIDES:
            taken = getattr(outcome, f'damage_to_{side_key}')
            healed = getattr(outcome, f'heal_{side_key}')
            rnd.set('health_after', side_key, apply_health(
                rnd.get('health_before', side_key), taken, healed, match.max_health(side_key)
            ))
            rnd.set('damage_dealt', other_side(side_key), taken)
            rnd.set('heal_amount', side_key, healed)

        rnd.round_winner_id = _round_winner(match, rnd.health_after_a, rnd.health_after_b)
        if rnd.round_winner_id is not None:
            progression.apply_round_result(match, rnd)

        payload = _build_payload(match, rnd, outcome)
        rnd.append_turn_log(payload)
        if rnd.round_winner_id is None:
            rnd.reset_turn()
        db.session.commit()

        current_app.logger.info(
            f"[resolve] match={match.id} round={payload['round_number']} turn={payload['turn']} "
            f"actions={payload['actions']['a']}/{payload['actions']['b']} "
            f"health={payload['health_after_a']}/{payload['health_after_b']} winner={payload['round_winner_id']}"
        )
        result = dict(payload)
        result['cached'] = False
        return match, result, True

    match, payload, changed = run_with_retry(_resolve_once, 'resolve')
    if changed:
        event = 'match_completed' if payload['match_completed'] else ('round_ended' if payload['round_ended'] else 'turn_resolved')
        publish_match_update(match, event, turn=payload['turn'], round_number=payload['round_number'])
    return payload
