"""create teams and events tables"""

from alembic import op
import sqlalchemy as sa

revision = '0001_create_teams_and_events'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'teams',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('consumer_number', sa.String(length=64), nullable=False),
        sa.Column('team_name', sa.String(length=200), nullable=False),
        sa.Column('leader_name', sa.String(length=200), nullable=False),
        sa.Column('leader_email', sa.String(length=255), nullable=False),
        sa.Column('mem1_name', sa.String(length=200), nullable=True),
        sa.Column('mem1_email', sa.String(length=255), nullable=True),
        sa.Column('mem2_name', sa.String(length=200), nullable=True),
        sa.Column('mem2_email', sa.String(length=255), nullable=True),
        sa.Column('mem3_name', sa.String(length=200), nullable=True),
        sa.Column('mem3_email', sa.String(length=255), nullable=True),
        sa.Column('mem4_name', sa.String(length=200), nullable=True),
        sa.Column('mem4_email', sa.String(length=255), nullable=True),
        sa.Column('att_code', sa.String(length=64), nullable=False),
        sa.Column('competition', sa.String(length=200), nullable=False),
        sa.Column('attendance', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_teams_att_code', 'teams', ['att_code'], unique=True)
    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('competition_name', sa.String(length=200), nullable=False, unique=True),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('events')
    op.drop_index('ix_teams_att_code', table_name='teams')
    op.drop_table('teams')
