"""initial

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '202610190001'
down_revision = None
branch_labels = None
depends_on = None

CRITERIA = (
    ('opening_response_time', 'Opening Response Time (4%)'),
    ('ongoing_response_time', 'Ongoing Response Time (4%)'),
    ('holding_management', 'Holding Management (4%)'),
    ('closing_management', 'Closing Management (4%)'),
    ('verification_efficiency', 'Verification Efficiency (20%)'),
    ('thoroughness', 'Thoroughness (20%)'),
    ('proactiveness', 'Proactiveness (4%)'),
    ('relevance_and_clarity', 'Relevance and Clarity (4%)'),
    ('language_natural_flow', 'Language & Natural Flow (10%)'),
    ('correction', 'Correction (7%)'),
    ('proper_empathy_acknowledgement', 'Proper Empathy & Acknowledgement (14%)'),
    ('overall_chat_handling_customer_experience', 'Overall Chat Handling Customer Experience (5%)'),
)


def upgrade() -> None:
    op.create_table('dataset_schema',
        sa.Column('name', sa.String(64), primary_key=True),
        sa.Column('columns', sa.JSON(), nullable=False),
        sa.Column('row_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('object_key', sa.Text()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    op.create_table('api_configuration',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(32), nullable=False, server_default='OpenAI'),
        sa.Column('model', sa.String(32), nullable=False, server_default='GPT-5 mini'),
        sa.Column('monthly_budget_usd', sa.Numeric(12, 2)),
        sa.Column('usage_month', sa.String(7)),
        sa.Column('usage_tokens', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    op.create_table('response_result',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('source_key', sa.String(64), nullable=False, unique=True),
        sa.Column('sampling_id', sa.Text(), unique=True),
        sa.Column('start_time', sa.DateTime(timezone=True)),
        sa.Column('completion_time', sa.DateTime(timezone=True)),
        sa.Column('qa_name', sa.Text()),
        sa.Column('chat_link', sa.Text()),
        sa.Column('agent_caller_name', sa.Text()),
        sa.Column('chat_date_time', sa.DateTime(timezone=True)),
        sa.Column('chat_duration', sa.Text()),
        *[sa.Column(name, sa.Text(), comment=label) for name, label in CRITERIA],
        sa.Column('breach_confidentiality_auto_failed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rudeness_unprofessionalism_auto_failed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('csat_rating', sa.Text()),
        sa.Column('csat_handling_category', sa.Text()),
        sa.Column('quality_assurance_feedback', sa.Text()),
        sa.Column('final_score', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('outcome', sa.String(16), nullable=False, server_default='ok'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_response_result_created_at', 'response_result', ['created_at'])

    op.create_table('processed_data',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('qa_name', sa.Text(), server_default='AIVA'),
        sa.Column('agent_caller_name', sa.Text()),
        *[sa.Column(name, sa.Numeric()) for name, _label in CRITERIA],
        sa.Column('breach_confidentiality', sa.Boolean()),
        sa.Column('rudeness_unprofessionalism', sa.Boolean()),
        sa.Column('scoring', sa.Numeric(5, 2)),
        sa.Column('results', sa.Text()),
        sa.Column('agent_status', sa.Text()),
    )


def downgrade() -> None:
    op.drop_table('processed_data')
    op.drop_index('ix_response_result_created_at', table_name='response_result')
    op.drop_table('response_result')
    op.drop_table('api_configuration')
    op.drop_table('dataset_schema')
