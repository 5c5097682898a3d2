from arena import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import json

SIDES = ('a', 'b')

# Match.status values
WAITING = 'waiting'
IN_PROGRESS = 'in_progress'
COMPLETED = 'completed'
ABANDONED = 'abandoned'
TERMINAL_STATUSES = (COMPLETED, ABANDONED)

# Round.turn_status values (derived, never stored)
AWAITING_COMMITS = 'awaiting_commits'
AWAITING_REVEALS = 'awaiting_reveals'
RESOLVED = 'resolved'


def utcnow():
    """Naive UTC timestamp; every DateTime column is stored naive-UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


def other_side(side):
    return 'b' if side == 'a' else 'a'


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(128), nullable=True)  # null for guest accounts
    is_guest = db.Column(db.Boolean, default=False, nullable=False)
    rating = db.Column(db.Integer, default=1200, nullable=False)
    games_played = db.Column(db.Integer, default=0, nullable=False)
    wins = db.Column(db.Integer, default=0, nullable=False)
    losses = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        if not self.password_hash:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'is_guest': self.is_guest,
            'rating': self.rating,
            'games_played': self.games_played,
            'wins': self.wins,
            'losses': self.losses,
        }


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.Integer, primary_key=True)
    match_type = db.Column(db.String(16), nullable=False, default='private')  # private, ranked
    private_code = db.Column(db.String(16), unique=True, nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default=WAITING)
    player_a_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    player_b_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    # Combatant stats are fixed for the whole match
    character_a_id = db.Column(db.Integer, nullable=True)
    character_b_id = db.Column(db.Integer, nullable=True)
    max_health_a = db.Column(db.Integer, nullable=False)
    damage_a = db.Column(db.Integer, nullable=False)
    max_health_b = db.Column(db.Integer, nullable=True)
    damage_b = db.Column(db.Integer, nullable=True)
    current_round = db.Column(db.Integer, nullable=False, default=1)
    round_wins_a = db.Column(db.Integer, nullable=False, default=0)
    round_wins_b = db.Column(db.Integer, nullable=False, default=0)
    winner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    # Ranked only: ratings at pairing time and the deltas applied on completion
    rating_a_before = db.Column(db.Integer, nullable=True)
    rating_b_before = db.Column(db.Integer, nullable=True)
    rating_delta_a = db.Column(db.Integer, nullable=True)
    rating_delta_b = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    version = db.Column(db.Integer, nullable=False)

    player_a = db.relationship('User', foreign_keys=[player_a_id])
    player_b = db.relationship('User', foreign_keys=[player_b_id])
    rounds = db.relationship('Round', back_populates='match', order_by='Round.round_number')

    __mapper_args__ = {'version_id_col': version}

    def side_of(self, user_id):
        if user_id is None:
            return None
        if self.player_a_id == user_id:
            return 'a'
        if self.player_b_id == user_id:
            return 'b'
        return None

    def player_id(self, side):
        return getattr(self, f'player_{side}_id')

    def max_health(self, side):
        return getattr(self, f'max_health_{side}')

    def damage(self, side):
        return getattr(self, f'damage_{side}')

    def round_wins(self, side):
        return getattr(self, f'round_wins_{side}')

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def to_dict(self):
        return {
            'id': self.id,
            'match_type': self.match_type,
            'private_code': self.private_code,
            'status': self.status,
            'player_a_id': self.player_a_id,
            'player_b_id': self.player_b_id,
            'character_a_id': self.character_a_id,
            'character_b_id': self.character_b_id,
            'max_health_a': self.max_health_a,
            'max_health_b': self.max_health_b,
            'damage_a': self.damage_a,
            'damage_b': self.damage_b,
            'current_round': self.current_round,
            'round_wins_a': self.round_wins_a,
            'round_wins_b': self.round_wins_b,
            'winner_id': self.winner_id,
            'rating_delta_a': self.rating_delta_a,
            'rating_delta_b': self.rating_delta_b,
            'created_at': _iso(self.created_at),
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
        }


class Round(db.Model):
    __tablename__ = 'round'
    __table_args__ = (db.UniqueConstraint('match_id', 'round_number', name='uq_round_match_number'),)
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    turn_number = db.Column(db.Integer, nullable=False, default=1)
    health_before_a = db.Column(db.Integer, nullable=True)
    health_before_b = db.Column(db.Integer, nullable=True)
    # Non-null means the current turn is resolved
    health_after_a = db.Column(db.Integer, nullable=True)
    health_after_b = db.Column(db.Integer, nullable=True)
    commit_hash_a = db.Column(db.String(64), nullable=True)
    commit_hash_b = db.Column(db.String(64), nullable=True)
    salt_a = db.Column(db.String(128), nullable=True)
    salt_b = db.Column(db.String(128), nullable=True)
    committed_at_a = db.Column(db.DateTime, nullable=True)
    committed_at_b = db.Column(db.DateTime, nullable=True)
    action_a = db.Column(db.String(16), nullable=True)
    action_b = db.Column(db.String(16), nullable=True)
    revealed_at_a = db.Column(db.DateTime, nullable=True)
    revealed_at_b = db.Column(db.DateTime, nullable=True)
    damage_dealt_a = db.Column(db.Integer, nullable=True)
    damage_dealt_b = db.Column(db.Integer, nullable=True)
    heal_amount_a = db.Column(db.Integer, nullable=True)
    heal_amount_b = db.Column(db.Integer, nullable=True)
    ready_a = db.Column(db.Boolean, nullable=False, default=False)
    ready_b = db.Column(db.Boolean, nullable=False, default=False)
    round_winner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    turn_log = db.Column(db.Text, nullable=True)  # JSON list of resolved turn payloads
    created_at = db.Column(db.DateTime, default=utcnow)
    version = db.Column(db.Integer, nullable=False)

    match = db.relationship('Match', back_populates='rounds')

    __mapper_args__ = {'version_id_col': version}

    def get(self, field, side):
        return getattr(self, f'{field}_{side}')

    def set(self, field, side, value):
        setattr(self, f'{field}_{side}', value)

    @property
    def turn_status(self):
        if self.health_after_a is not None and self.health_after_b is not None:
            return RESOLVED
        if self.commit_hash_a and self.commit_hash_b:
            return AWAITING_REVEALS
        return AWAITING_COMMITS

    @property
    def both_committed(self):
        return bool(self.commit_hash_a and self.commit_hash_b)

    @property
    def both_revealed(self):
        return bool(self.action_a and self.action_b)

    @property
    def has_ended(self):
        return self.round_winner_id is not None

    def load_turn_log(self):
        try:
            return json.loads(self.turn_log) if self.turn_log else []
        except ValueError:
            return []

    def append_turn_log(self, payload):
        history = self.load_turn_log()
        history.append(payload)
        self.turn_log = json.dumps(history)

    def logged_turn(self, turn):
        for entry in self.load_turn_log():
            if entry.get('turn') == turn:
                return entry
        return None

    def reset_turn(self):
        """Start the next turn: carry health forward and clear per-turn fields."""
        for side in SIDES:
            self.set('health_before', side, self.get('health_after', side))
            for field in ('health_after', 'commit_hash', 'salt', 'committed_at', 'action',
                          'revealed_at', 'damage_dealt', 'heal_amount'):
                self.set(field, side, None)
        self.turn_number = (self.turn_number or 1) + 1

    def to_dict(self):
        resolved = self.turn_status == RESOLVED
        payload = {
            'id': self.id,
            'match_id': self.match_id,
            'round_number': self.round_number,
            'turn': self.turn_number,
            'turn_status': self.turn_status,
            'round_winner_id': self.round_winner_id,
            'turn_log': self.load_turn_log(),
        }
        for side in SIDES:
            payload[f'health_before_{side}'] = self.get('health_before', side)
            payload[f'health_after_{side}'] = self.get('health_after', side)
            payload[f'has_committed_{side}'] = bool(self.get('commit_hash', side))
            payload[f'has_revealed_{side}'] = bool(self.get('action', side))
            # Revealed actions stay hidden until the turn resolves
            payload[f'action_{side}'] = self.get('action', side) if resolved else None
            payload[f'damage_dealt_{side}'] = self.get('damage_dealt', side)
            payload[f'heal_amount_{side}'] = self.get('heal_amount', side)
            payload[f'ready_{side}'] = bool(self.get('ready', side))
        return payload


class QueueEntry(db.Model):
    __tablename__ = 'queue_entry'
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    character_id = db.Column(db.Integer, nullable=True)
    max_health = db.Column(db.Integer, nullable=False)
    damage = db.Column(db.Integer, nullable=False)
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    player = db.relationship('User')

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'rating': self.rating,
            'character_id': self.character_id,
            'max_health': self.max_health,
            'damage': self.damage,
            'joined_at': _iso(self.joined_at),
        }
