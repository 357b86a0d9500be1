"""create quizit tables

Revision ID: d4e5f6a7b8c9
Revises:
Create Date: 2026-10-16 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'd4e5f6a7b8c9'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create card, seed bundle, quizit, history and user review tables."""
    op.create_table('cards',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('card_idea', sa.Text(), nullable=False, server_default=''),
        sa.Column('words_to_avoid', sa.JSON(), nullable=True),
        sa.Column('component_structure', sa.JSON(), nullable=True),
        sa.Column('valid_permutations', sa.JSON(), nullable=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('banner', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('seed_bundles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('card_id', sa.String(), nullable=False),
        sa.Column('bundle_index', sa.Integer(), nullable=False),
        sa.Column('bundle_items', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('card_id', 'bundle_index')
    )
    op.create_index('ix_seed_bundles_card_id', 'seed_bundles', ['card_id'])
    op.create_table('quizits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('session_id', sa.String(), nullable=True),
        sa.Column('card_id_1', sa.String(), nullable=False),
        sa.Column('card_id_2', sa.String(), nullable=True),
        sa.Column('scenario', sa.Text(), nullable=False),
        sa.Column('reasoning1', sa.Text(), nullable=False),
        sa.Column('reasoning2', sa.Text(), nullable=True),
        sa.Column('card_1_recognition_score', sa.Float(), nullable=True, server_default='0'),
        sa.Column('card_1_reasoning_score', sa.Float(), nullable=True, server_default='0'),
        sa.Column('card_2_recognition_score', sa.Float(), nullable=True),
        sa.Column('card_2_reasoning_score', sa.Float(), nullable=True),
        sa.Column('permutation_index_1', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('permutation_index_2', sa.Integer(), nullable=True),
        sa.Column('seed_bundle_index', sa.Integer(), nullable=True),
        sa.Column('chosen_card_for_seed', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_quizits_card_id_1', 'quizits', ['card_id_1'])
    op.create_index('ix_quizits_card_id_2', 'quizits', ['card_id_2'])
    op.create_table('card_generation_history',
        sa.Column('card_id', sa.String(), nullable=False),
        sa.Column('last_quizit_id', sa.Integer(), nullable=False),
        sa.Column('last_permutation_index', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('last_seed_bundle_index', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('card_id')
    )
    op.create_table('user_cards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('card_id', sa.String(), nullable=False),
        sa.Column('ease_factor', sa.Float(), nullable=True, server_default='2.5'),
        sa.Column('interval_days', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('repetitions', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('due', sa.Date(), nullable=True),
        sa.Column('last_reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('queue', sa.Integer(), nullable=True, server_default='-1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'card_id')
    )
    op.create_index('ix_user_cards_user_id', 'user_cards', ['user_id'])
    op.create_table('user_daily_reviews',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('review_date', sa.Date(), nullable=True),
        sa.Column('new_cards_reviewed', sa.Integer(), nullable=True, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'review_date')
    )


def downgrade() -> None:
    """Drop the quizit tables."""
    op.drop_table('user_daily_reviews')
    op.drop_index('ix_user_cards_user_id', table_name='user_cards')
    op.drop_table('user_cards')
    op.drop_table('card_generation_history')
    op.drop_index('ix_quizits_card_id_2', table_name='quizits')
    op.drop_index('ix_quizits_card_id_1', table_name='quizits')
    op.drop_table('quizits')
    op.drop_index('ix_seed_bundles_card_id', table_name='seed_bundles')
    op.drop_table('seed_bundles')
    op.drop_table('cards')
