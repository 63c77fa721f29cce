"""create user, lobby, lobby_player, answer and match tables

Revision ID: 5b7e2d9c1a40
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b7e2d9c1a40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=50), nullable=False),
            sa.Column('pin_hash', sa.String(length=128), nullable=False),
            sa.Column('avatar_url', sa.String(length=256), nullable=True),
            sa.Column('total_games', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_wins', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=True),
        )
        op.create_index('ix_user_name', 'user', ['name'], unique=True)

    if 'lobby' not in existing_tables:
        op.create_table(
            'lobby',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('code', sa.String(length=6), nullable=False),
            sa.Column('name', sa.String(length=50), nullable=False),
            sa.Column('owner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
            sa.Column('max_players', sa.Integer(), nullable=False, server_default='8'),
            sa.Column('question_count', sa.Integer(), nullable=False, server_default='10'),
            sa.Column('question_time_limit', sa.Integer(), nullable=False, server_default='30'),
            sa.Column('difficulty', sa.String(length=16), nullable=True),
            sa.Column('current_question_index', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('questions', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.Column('started_at', sa.DateTime(), nullable=True),
            sa.Column('ended_at', sa.DateTime(), nullable=True),
        )
        op.create_index('ix_lobby_code', 'lobby', ['code'], unique=True)

    if 'lobby_player' not in existing_tables:
        op.create_table(
            'lobby_player',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('lobby_id', sa.Integer(), sa.ForeignKey('lobby.id'), nullable=False),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('name', sa.String(length=50), nullable=False),
            sa.Column('avatar_url', sa.String(length=256), nullable=True),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('sid', sa.String(length=64), nullable=True),
            sa.UniqueConstraint('lobby_id', 'user_id', name='uq_lobby_player_user'),
        )
        op.create_index('ix_lobby_player_sid', 'lobby_player', ['sid'])

    if 'answer' not in existing_tables:
        op.create_table(
            'answer',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('player_id', sa.Integer(), sa.ForeignKey('lobby_player.id'), nullable=False),
            sa.Column('question_id', sa.String(length=64), nullable=False),
            sa.Column('submitted_value', sa.Text(), nullable=False),
            sa.Column('is_correct', sa.Boolean(), nullable=False),
            sa.Column('response_time_ms', sa.Integer(), nullable=False),
            sa.UniqueConstraint('player_id', 'question_id', name='uq_answer_player_question'),
        )
        op.create_index('ix_answer_question_id', 'answer', ['question_id'])

    if 'match' not in existing_tables:
        op.create_table(
            'match',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('lobby_code', sa.String(length=6), nullable=False),
            sa.Column('players', sa.Text(), nullable=False),
            sa.Column('winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('started_at', sa.DateTime(), nullable=False),
            sa.Column('ended_at', sa.DateTime(), nullable=False),
            sa.Column('total_questions', sa.Integer(), nullable=False),
        )
        op.create_index('ix_match_lobby_code', 'match', ['lobby_code'])


def downgrade():
    op.drop_index('ix_match_lobby_code', table_name='match')
    op.drop_table('match')
    op.drop_index('ix_answer_question_id', table_name='answer')
    op.drop_table('answer')
    op.drop_index('ix_lobby_player_sid', table_name='lobby_player')
    op.drop_table('lobby_player')
    op.drop_index('ix_lobby_code', table_name='lobby')
    op.drop_table('lobby')
    op.drop_index('ix_user_name', table_name='user')
    op.drop_table('user')
