"""agent config

Revision ID: 202610190002
Revises: 202610190001
Create Date: 2026-10-19 00:02:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '202610190002'
down_revision = '202610190001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table('ai_agent_config',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('rubric_understanding', sa.Text()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )


def downgrade() -> None:
    op.drop_table('ai_agent_config')
