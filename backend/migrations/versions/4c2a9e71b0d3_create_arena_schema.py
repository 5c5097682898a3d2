"""create user, match, round and queue_entry tables

Revision ID: 4c2a9e71b0d3
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e71b0d3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=128), nullable=True),
        sa.Column('is_guest', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rating', sa.Integer(), nullable=False, server_default='1200'),
        sa.Column('games_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('losses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'match',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('match_type', sa.String(length=16), nullable=False),
        sa.Column('private_code', sa.String(length=16), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('player_a_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('player_b_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('character_a_id', sa.Integer(), nullable=True),
        sa.Column('character_b_id', sa.Integer(), nullable=True),
        sa.Column('max_health_a', sa.Integer(), nullable=False),
        sa.Column('damage_a', sa.Integer(), nullable=False),
        sa.Column('max_health_b', sa.Integer(), nullable=True),
        sa.Column('damage_b', sa.Integer(), nullable=True),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('round_wins_a', sa.Integer(), nullable=False),
        sa.Column('round_wins_b', sa.Integer(), nullable=False),
        sa.Column('winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('rating_a_before', sa.Integer(), nullable=True),
        sa.Column('rating_b_before', sa.Integer(), nullable=True),
        sa.Column('rating_delta_a', sa.Integer(), nullable=True),
        sa.Column('rating_delta_b', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_match_private_code', 'match', ['private_code'], unique=True)

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id'), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('turn_number', sa.Integer(), nullable=False),
        sa.Column('health_before_a', sa.Integer(), nullable=True),
        sa.Column('health_before_b', sa.Integer(), nullable=True),
        sa.Column('health_after_a', sa.Integer(), nullable=True),
        sa.Column('health_after_b', sa.Integer(), nullable=True),
        sa.Column('commit_hash_a', sa.String(length=64), nullable=True),
        sa.Column('commit_hash_b', sa.String(length=64), nullable=True),
        sa.Column('salt_a', sa.String(length=128), nullable=True),
        sa.Column('salt_b', sa.String(length=128), nullable=True),
        sa.Column('committed_at_a', sa.DateTime(), nullable=True),
        sa.Column('committed_at_b', sa.DateTime(), nullable=True),
        sa.Column('action_a', sa.String(length=16), nullable=True),
        sa.Column('action_b', sa.String(length=16), nullable=True),
        sa.Column('revealed_at_a', sa.DateTime(), nullable=True),
        sa.Column('revealed_at_b', sa.DateTime(), nullable=True),
        sa.Column('damage_dealt_a', sa.Integer(), nullable=True),
        sa.Column('damage_dealt_b', sa.Integer(), nullable=True),
        sa.Column('heal_amount_a', sa.Integer(), nullable=True),
        sa.Column('heal_amount_b', sa.Integer(), nullable=True),
        sa.Column('ready_a', sa.Boolean(), nullable=False),
        sa.Column('ready_b', sa.Boolean(), nullable=False),
        sa.Column('round_winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('turn_log', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('match_id', 'round_number', name='uq_round_match_number'),
    )
    op.create_index('ix_round_match_id', 'round', ['match_id'], unique=False)

    op.create_table(
        'queue_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('character_id', sa.Integer(), nullable=True),
        sa.Column('max_health', sa.Integer(), nullable=False),
        sa.Column('damage', sa.Integer(), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('player_id'),
    )
    op.create_index('ix_queue_entry_joined_at', 'queue_entry', ['joined_at'], unique=False)


def downgrade():
    op.drop_index('ix_queue_entry_joined_at', table_name='queue_entry')
    op.drop_table('queue_entry')
    op.drop_index('ix_round_match_id', table_name='round')
    op.drop_table('round')
    op.drop_index('ix_match_private_code', table_name='match')
    op.drop_table('match')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
