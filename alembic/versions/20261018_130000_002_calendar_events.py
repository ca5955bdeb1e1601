"""Calendar events: scheduled video calls between matched users.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 13:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'calendar_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organizer_id', sa.Uuid(), nullable=False),
        sa.Column('participant_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('video_link', sa.String(500), nullable=False),
        sa.Column('organizer_confirmed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('participant_confirmed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['organizer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['participant_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_calendar_events_organizer_id', 'calendar_events', ['organizer_id'])
    op.create_index('ix_calendar_events_participant_id', 'calendar_events', ['participant_id'])


def downgrade() -> None:
    op.drop_index('ix_calendar_events_participant_id', table_name='calendar_events')
    op.drop_index('ix_calendar_events_organizer_id', table_name='calendar_events')
    op.drop_table('calendar_events')
