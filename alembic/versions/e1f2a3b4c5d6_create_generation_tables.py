"""create users, generation_sessions and flashcards tables

Revision ID: e1f2a3b4c5d6
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'e1f2a3b4c5d6'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the tables owned by the generation pipeline."""
    generation_status_enum = sa.Enum(
        'pending', 'processing', 'completed', 'partial', 'failed',
        name='generation_status_enum',
    )
    flashcard_source_enum = sa.Enum('ai', 'manual', name='flashcard_source_enum')

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'generation_sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('input_count', sa.Integer(), nullable=False),
        sa.Column('generated_count', sa.Integer(), nullable=False),
        sa.Column('status', generation_status_enum, nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_generation_sessions_user_created', 'generation_sessions', ['user_id', 'created_at'],
    )

    op.create_table(
        'flashcards',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('generation_session_id', sa.Uuid(), nullable=True),
        sa.Column('sentence_en', sa.String(length=200), nullable=False),
        sa.Column('translation_pl', sa.String(length=200), nullable=False),
        sa.Column('source', flashcard_source_enum, nullable=False),
        sa.Column('is_edited', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['generation_session_id'], ['generation_sessions.id'], ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_flashcards_user_created', 'flashcards', ['user_id', 'created_at'])
    op.create_index(
        'ix_flashcards_generation_session_id', 'flashcards', ['generation_session_id'],
    )


def downgrade() -> None:
    """Drop the generation pipeline tables."""
    op.drop_index('ix_flashcards_generation_session_id', table_name='flashcards')
    op.drop_index('ix_flashcards_user_created', table_name='flashcards')
    op.drop_table('flashcards')
    op.drop_index('ix_generation_sessions_user_created', table_name='generation_sessions')
    op.drop_table('generation_sessions')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    sa.Enum(name='flashcard_source_enum').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='generation_status_enum').drop(op.get_bind(), checkfirst=True)
