"""Match coordinator: match creation, round tally, best-of-five, round handoff."""

import secrets

from flask import current_app

from arena import db
from arena.errors import StateError, ValidationError, NotFoundError
from arena.models import (
    ABANDONED, COMPLETED, IN_PROGRESS, WAITING, Match, Round, User, utcnow,
)
from arena.notifications import publish_match_update
from arena.services import rating
from .access import load_match, load_round, run_with_retry

# No look-alike characters (I/1, O/0)
CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
CODE_ATTEMPTS = 10


def validate_stats(data):
    """Combatant stats supplied by the client's character selection."""
    cfg = current_app.config
    limits = {
        'max_health': int(cfg.get('MAX_COMBATANT_HEALTH', 1000)),
        'damage': int(cfg.get('MAX_COMBATANT_DAMAGE', 500)),
    }
    stats = {}
    for key, upper in limits.items():
        value = data.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or not (1 <= value <= upper):
            raise ValidationError(f'{key} must be an integer between 1 and {upper}', field=key)
        stats[key] = value
    character_id = data.get('character_id')
    if character_id is not None and (isinstance(character_id, bool) or not isinstance(character_id, int)):
        raise ValidationError('character_id must be an integer', field='character_id')
    stats['character_id'] = character_id
    return stats


def _generate_private_code():
    length = int(current_app.config.get('PRIVATE_CODE_LENGTH', 6))
    for _ in range(CODE_ATTEMPTS):
        code = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))
        if not Match.query.filter_by(private_code=code).first():
            return code
    raise StateError('Failed to generate a unique match code', retryable=True)


def create_private_match(user, stats):
    """Open a private match waiting for a second player to join by code."""
    match = Match(
        match_type='private',
        private_code=_generate_private_code(),
        status=WAITING,
        player_a_id=user.id,
        character_a_id=stats.get('character_id'),
        max_health_a=stats['max_health'],
        damage_a=stats['damage'],
        current_round=1,
    )
    db.session.add(match)
    db.session.flush()
    db.session.add(Round(match_id=match.id, round_number=1, health_before_a=stats['max_health']))
    db.session.commit()
    current_app.logger.info(f"[private-create] match={match.id} code={match.private_code} player={user.id}")
    return match


def join_private_match(code, user, stats):
    code = (code or '').strip().upper()
    if not code:
        raise ValidationError('private_code is required', field='private_code')

    def _join_once():
        match = Match.query.filter_by(private_code=code).with_for_update().first()
        if not match:
            raise NotFoundError('Match not found. Check the code and try again.')
        if match.player_a_id == user.id:
            raise ValidationError('Cannot join your own match')
        if match.player_b_id == user.id and match.status == IN_PROGRESS:
            return match, False
        if match.status != WAITING:
            raise StateError('Match has already started or ended', status=match.status)
        if match.player_b_id is not None:
            raise StateError('Match is full')

        match.player_b_id = user.id
        match.character_b_id = stats.get('character_id')
        match.max_health_b = stats['max_health']
        match.damage_b = stats['damage']
        match.status = IN_PROGRESS
        match.started_at = utcnow()
        first = load_round(match, 1, lock=True)
        first.health_before_b = stats['max_health']
        db.session.commit()
        current_app.logger.info(f"[private-join] match={match.id} player={user.id}")
        return match, True

    match, changed = run_with_retry(_join_once, 'join')
    if changed:
        publish_match_update(match, 'started')
    return match


def create_ranked_match(opponent, user, user_rating, stats):
    """Create a ranked match from a claimed queue entry snapshot.

    The opponent (who queued first) plays side A. The caller commits.
    """
    match = Match(
        match_type='ranked',
        status=IN_PROGRESS,
        player_a_id=opponent['player_id'],
        character_a_id=opponent.get('character_id'),
        max_health_a=opponent['max_health'],
        damage_a=opponent['damage'],
        rating_a_before=opponent['rating'],
        player_b_id=user.id,
        character_b_id=stats.get('character_id'),
        max_health_b=stats['max_health'],
        damage_b=stats['damage'],
        rating_b_before=user_rating,
        current_round=1,
        started_at=utcnow(),
    )
    db.session.add(match)
    db.session.flush()
    db.session.add(Round(
        match_id=match.id,
        round_number=1,
        health_before_a=opponent['max_health'],
        health_before_b=stats['max_health'],
    ))
    return match


def apply_round_result(match, rnd):
    """Credit the round winner; complete the match at the win threshold.

    Runs inside the resolving transaction so the round result and the match
    tally are written together.
    """
    side = match.side_of(rnd.round_winner_id)
    if side is None:
        return
    setattr(match, f'round_wins_{side}', match.round_wins(side) + 1)
    rounds_to_win = int(current_app.config.get('ROUNDS_TO_WIN', 3))
    if match.round_wins(side) >= rounds_to_win:
        match.status = COMPLETED
        match.winner_id = rnd.round_winner_id
        match.completed_at = utcnow()
        if match.match_type == 'ranked':
            _apply_rating_update(match, side)
        current_app.logger.info(
            f"[match-complete] match={match.id} winner={match.winner_id} score={match.round_wins_a}-{match.round_wins_b}"
        )


def _apply_rating_update(match, winner_side):
    player_a = db.session.get(User, match.player_a_id)
    player_b = db.session.get(User, match.player_b_id)
    update = rating.compute_match_update(
        rating_a=match.rating_a_before if match.rating_a_before is not None else player_a.rating,
        rating_b=match.rating_b_before if match.rating_b_before is not None else player_b.rating,
        games_played_a=player_a.games_played,
        games_played_b=player_b.games_played,
        winner_side=winner_side,
    )
    for side, user in (('a', player_a), ('b', player_b)):
        delta = update[side]
        user.rating = max(0, user.rating + delta)
        user.games_played += 1
        if side == winner_side:
            user.wins += 1
        else:
            user.losses += 1
        setattr(match, f'rating_delta_{side}', delta)


def ready_for_next_round(match_id, user_id, round_number):
    """Record the caller's readiness; advance the match once both are ready.

    Safe to retry: once the match has moved past ``round_number`` the call
    reports the advance instead of creating another round.
    """

    def _ready_once():
        match, side = load_match(match_id, user_id, lock=True)
        if match.current_round > round_number:
            return match, {'both_ready': True, 'next_round_number': round_number + 1}, False
        if match.status == ABANDONED:
            raise StateError('Match was abandoned', status=match.status)

        rnd = load_round(match, round_number, lock=True)
        if match.status == COMPLETED:
            return match, {'match_completed': True, 'winner_id': match.winner_id}, False
        if not rnd.has_ended:
            raise StateError('Round has not ended yet', round_number=round_number)

        rnd.set('ready', side, True)
        if not (rnd.ready_a and rnd.ready_b):
            db.session.commit()
            current_app.logger.info(f"[ready] match={match.id} round={round_number} side={side} waiting")
            return match, {'both_ready': False, 'status': 'waiting'}, True

        next_round = round_number + 1
        match.current_round = next_round
        db.session.add(Round(
            match_id=match.id,
            round_number=next_round,
            health_before_a=match.max_health_a,
            health_before_b=match.max_health_b,
            ready_a=False,
            ready_b=False,
        ))
        db.session.commit()
        current_app.logger.info(f"[next-round] match={match.id} advance round {round_number} -> {next_round}")
        return match, {'both_ready': True, 'next_round_number': next_round}, True

    match, result, changed = run_with_retry(_ready_once, 'ready')
    if changed:
        event = 'round_started' if result.get('both_ready') else 'player_ready'
        publish_match_update(match, event)
    return result


def abandon_match(match_id, user_id):
    """Explicitly leave a match; it ends with no winner."""

    def _abandon_once():
        match, side = load_match(match_id, user_id, lock=True)
        if match.status == ABANDONED:
            return match, False
        if match.status == COMPLETED:
            raise StateError('Match is already completed', status=match.status)
        match.status = ABANDONED
        match.completed_at = utcnow()
        db.session.commit()
        current_app.logger.info(f"[abandon] match={match.id} side={side}")
        return match, True

    match, changed = run_with_retry(_abandon_once, 'abandon')
    if changed:
        publish_match_update(match, 'abandoned')
    return match


def get_match_state(match_id, user_id):
    match, side = load_match(match_id, user_id)
    rnd = load_round(match, match.current_round)
    payload = match.to_dict()
    payload['you'] = side
    payload['round'] = rnd.to_dict()
    payload['turn_duration_sec'] = int(current_app.config.get('TURN_DURATION_SEC', 30))
    return payload
