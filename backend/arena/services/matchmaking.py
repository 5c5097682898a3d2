"""Rating-bounded matchmaking queue.

One live entry per player. Pairing claims an opponent entry with a
``DELETE ... WHERE id = ?`` and trusts the affected row count, so two callers
racing for the same opponent cannot both win it.
"""

from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from arena import db
from arena.errors import AuthorizationError, StateError
from arena.models import QueueEntry, utcnow
from arena.notifications import publish_match_found
from arena.services.battle import progression
from arena.services.battle.access import find_active_match
from arena.services.rating import rating_window


def _timeout():
    return timedelta(seconds=int(current_app.config.get('QUEUE_TIMEOUT_SEC', 60)))


def _tolerance():
    return int(current_app.config.get('RATING_TOLERANCE', 200))


def _require_ranked_eligible(user):
    if user.is_guest:
        raise AuthorizationError(
            'Please sign up to play ranked matches. Guest accounts can only join private matches.'
        )


def purge_expired(now=None):
    cutoff = (now or utcnow()) - _timeout()
    removed = QueueEntry.query.filter(QueueEntry.joined_at < cutoff).delete(synchronize_session=False)
    if removed:
        current_app.logger.info(f"[queue-purge] removed={removed}")
    return removed


def enqueue(user, user_rating, stats):
    """Upsert the caller's queue entry, timestamped now."""
    _require_ranked_eligible(user)
    active = find_active_match(user.id)
    if active is not None:
        raise StateError('Already in an active match', match_id=active.id)

    fields = {
        'rating': user_rating,
        'character_id': stats.get('character_id'),
        'max_health': stats['max_health'],
        'damage': stats['damage'],
        'joined_at': utcnow(),
    }
    entry = QueueEntry.query.filter_by(player_id=user.id).first()
    if entry is None:
        db.session.add(QueueEntry(player_id=user.id, **fields))
        try:
            db.session.commit()
        except IntegrityError:
            # A concurrent join inserted first; overwrite that entry instead
            db.session.rollback()
            QueueEntry.query.filter_by(player_id=user.id).update(fields, synchronize_session=False)
            db.session.commit()
    else:
        for key, value in fields.items():
            setattr(entry, key, value)
        db.session.commit()
    current_app.logger.info(f"[queue-join] player={user.id} rating={user_rating}")


def _snapshot(entry):
    return {
        'id': entry.id,
        'player_id': entry.player_id,
        'rating': entry.rating,
        'character_id': entry.character_id,
        'max_health': entry.max_health,
        'damage': entry.damage,
    }


def _claim_pair(own_id, opponent_id):
    """Delete both entries in id order; True only if this caller removed both."""
    for entry_id in sorted((own_id, opponent_id)):
        removed = QueueEntry.query.filter_by(id=entry_id).delete(synchronize_session=False)
        if removed != 1:
            return False
    return True


def _matched(match):
    return {'matched': True, 'match_id': match.id, 'match': match.to_dict()}


def find_match(user, user_rating, stats=None):
    """Pair the caller with the longest-waiting opponent inside the rating window.

    The caller must hold a live queue entry. ``stats`` overrides the stats
    stored in that entry for the caller's side.
    """
    now = utcnow()
    purge_expired(now)
    # Release the purge before searching so the claim is the only write in flight
    db.session.commit()
    window = rating_window(user_rating, _tolerance())

    own = QueueEntry.query.filter_by(player_id=user.id).first()
    if own is None:
        db.session.commit()
        return {'matched': False, 'queued': False, 'rating_window': window}
    own_snapshot = _snapshot(own)
    caller_stats = stats or own_snapshot

    candidates = [
        _snapshot(entry) for entry in (
            QueueEntry.query
            .filter(
                QueueEntry.player_id != user.id,
                QueueEntry.rating >= window['min'],
                QueueEntry.rating <= window['max'],
                QueueEntry.joined_at >= now - _timeout(),
            )
            .order_by(QueueEntry.joined_at.asc(), QueueEntry.id.asc())
            .all()
        )
    ]

    for opponent in candidates:
        if _claim_pair(own_snapshot['id'], opponent['id']):
            match = progression.create_ranked_match(opponent, user, user_rating, caller_stats)
            db.session.commit()
            current_app.logger.info(
                f"[queue-match] match={match.id} a={opponent['player_id']} b={user.id} "
                f"ratings={opponent['rating']}/{user_rating}"
            )
            publish_match_found(match)
            return _matched(match)

        db.session.rollback()
        if QueueEntry.query.filter_by(id=own_snapshot['id']).first() is None:
            # Another caller claimed us first
            current_app.logger.info(f"[queue-claimed] player={user.id} paired by another caller")
            active = find_active_match(user.id)
            if active is not None:
                return _matched(active)
            return {'matched': False, 'queued': False, 'rating_window': window}
        current_app.logger.info(f"[queue-race] player={user.id} lost claim on entry={opponent['id']}")

    db.session.commit()
    return {'matched': False, 'queued': True, 'rating_window': window}


def join(user, stats):
    """Enqueue then immediately try to pair."""
    user_rating = user.rating
    enqueue(user, user_rating, stats)
    return find_match(user, user_rating, stats)


def queue_status(user):
    """Polling fallback while waiting in the queue."""
    entry = QueueEntry.query.filter_by(player_id=user.id).first()
    if entry is None or entry.joined_at < utcnow() - _timeout():
        active = find_active_match(user.id)
        if active is not None:
            return _matched(active)
    return find_match(user, user.rating)


def cancel(user):
    removed = QueueEntry.query.filter_by(player_id=user.id).delete(synchronize_session=False)
    db.session.commit()
    current_app.logger.info(f"[queue-cancel] player={user.id} removed={removed}")
    return {'cancelled': True}
