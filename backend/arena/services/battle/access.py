from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from arena import db
from arena.errors import ArenaError, ConcurrencyConflict, NotAParticipant, NotFoundError
from arena.models import IN_PROGRESS, Match, Round


def load_match(match_id, user_id, lock=False):
    """Fetch a match and the caller's side ('a' or 'b').

    With ``lock`` the row is read ``FOR UPDATE`` so concurrent writers on the
    same match queue up behind this transaction (no-op on SQLite, where the
    version column still catches the race).
    """
    query = Match.query.filter_by(id=match_id)
    if lock:
        query = query.with_for_update()
    match = query.first()
    if not match:
        raise NotFoundError('Match not found', match_id=match_id)
    side = match.side_of(user_id)
    if side is None:
        raise NotAParticipant('Not part of this match', match_id=match_id)
    return match, side


def load_round(match, round_number, lock=False):
    query = Round.query.filter_by(match_id=match.id, round_number=round_number)
    if lock:
        query = query.with_for_update()
    rnd = query.first()
    if not rnd:
        raise NotFoundError('Round not found', match_id=match.id, round_number=round_number)
    return rnd


def find_active_match(user_id):
    return (
        Match.query
        .filter(Match.status == IN_PROGRESS, or_(Match.player_a_id == user_id, Match.player_b_id == user_id))
        .order_by(Match.id.desc())
        .first()
    )


def run_with_retry(operation, label, attempts=None):
    """Run ``operation`` (which must re-read everything it touches) until it
    commits without losing an optimistic version check.

    A lost race rolls back and re-runs, so the second attempt observes the
    winner's write. Exhausting the attempts surfaces ``ConcurrencyConflict``.
    """
    if attempts is None:
        attempts = int(current_app.config.get('WRITE_RETRY_ATTEMPTS', 3))
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ArenaError:
            db.session.rollback()
            raise
        except (StaleDataError, IntegrityError) as exc:
            db.session.rollback()
            current_app.logger.warning(f"[conflict] op={label} attempt={attempt}/{attempts} {type(exc).__name__}")
    raise ConcurrencyConflict(f'Lost a concurrent update during {label}; re-fetch state', operation=label)
