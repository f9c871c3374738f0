"""
SQLAlchemy Database Models

This module defines the fixed part of The Reader's schema: the dataset
schema registry, the API and agent configuration singletons, scoring
results and their numeric flattening. The uploaded datasets, the snapshot
and the sampling tables are dynamic and described by ``DatasetSchema`` rows.

Author: The Reader Team
Date: 2026-10-19
"""

import uuid

from sqlalchemy import (
    JSON, BigInteger, Boolean, Column, DateTime, Integer, Numeric, String, Text
)
from sqlalchemy.sql import func

from qa_reader.common.db import Base


# Rubric criteria in report order; weights live in the scoring service
CRITERIA = (
    'opening_response_time',
    'ongoing_response_time',
    'holding_management',
    'closing_management',
    'verification_efficiency',
    'thoroughness',
    'proactiveness',
    'relevance_and_clarity',
    'language_natural_flow',
    'correction',
    'proper_empathy_acknowledgement',
    'overall_chat_handling_customer_experience',
)


class DatasetSchema(Base):
    """
    Schema registry entry for one dynamic table.

    Maps a logical dataset name (raw_chat, agent_info, criteria_scoring,
    data_snapshot, sampling_data) to the ordered list of its columns. It is
    written in the same transaction that (re)creates the table.
    """
    __tablename__ = 'dataset_schema'

    name = Column(String(64), primary_key=True)
    columns = Column(
        JSON,
        nullable=False,
        comment='Ordered list of [normalized_name, declared_type] pairs'
    )
    row_count = Column(Integer, nullable=False, default=0)
    object_key = Column(Text, comment='Storage object the table was loaded from')

    # Audit fields
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )


class ApiConfiguration(Base):
    """
    Singleton (id = 1) holding the LLM provider and model selection.

    The credential itself comes from the secret store; this row only
    tracks which model to call and how many tokens were used this month.
    """
    __tablename__ = 'api_configuration'

    id = Column(Integer, primary_key=True, default=1)
    provider = Column(String(32), nullable=False, default='OpenAI')
    model = Column(String(32), nullable=False, default='GPT-5 mini')
    monthly_budget_usd = Column(Numeric(12, 2))

    # Usage tracking
    usage_month = Column(String(7), comment='YYYY-MM the token counter belongs to')
    usage_tokens = Column(BigInteger, nullable=False, default=0)

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )


class AgentConfiguration(Base):
    """Singleton (id = 1) with the reviewers' free-text notes on how the rubric is read."""
    __tablename__ = 'ai_agent_config'

    id = Column(Integer, primary_key=True, default=1)
    rubric_understanding = Column(Text)

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )


class ResponseResult(Base):
    """
    LLM evaluation of one sampled chat.

    Unique by ``sampling_id`` (stable identifier from the source row) and
    by ``source_key`` (content hash fallback). Criterion columns hold
    ``"{score}/100 - {comment}"`` strings.
    """
    __tablename__ = 'response_result'

    # Primary fields
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    source_key = Column(String(64), unique=True, nullable=False)
    sampling_id = Column(Text, unique=True)

    # Chat metadata
    start_time = Column(DateTime(timezone=True))
    completion_time = Column(DateTime(timezone=True))
    qa_name = Column(Text)
    chat_link = Column(Text)
    agent_caller_name = Column(Text)
    chat_date_time = Column(DateTime(timezone=True))
    chat_duration = Column(Text)

    # Weighted criteria
    opening_response_time = Column(Text, comment='Opening Response Time (4%)')
    ongoing_response_time = Column(Text, comment='Ongoing Response Time (4%)')
    holding_management = Column(Text, comment='Holding Management (4%)')
    closing_management = Column(Text, comment='Closing Management (4%)')
    verification_efficiency = Column(Text, comment='Verification Efficiency (20%)')
    thoroughness = Column(Text, comment='Thoroughness (20%)')
    proactiveness = Column(Text, comment='Proactiveness (4%)')
    relevance_and_clarity = Column(Text, comment='Relevance and Clarity (4%)')
    language_natural_flow = Column(Text, comment='Language & Natural Flow (10%)')
    correction = Column(Text, comment='Correction (7%)')
    proper_empathy_acknowledgement = Column(Text, comment='Proper Empathy & Acknowledgement (14%)')
    overall_chat_handling_customer_experience = Column(
        Text,
        comment='Overall Chat Handling Customer Experience (5%)'
    )

    # Auto-fail flags
    breach_confidentiality_auto_failed = Column(Boolean, nullable=False, default=False)
    rudeness_unprofessionalism_auto_failed = Column(Boolean, nullable=False, default=False)

    # Free text
    csat_rating = Column(Text)
    csat_handling_category = Column(Text)
    quality_assurance_feedback = Column(Text)

    # Outcome
    final_score = Column(Numeric(5, 2), nullable=False, default=0)
    outcome = Column(
        String(16),
        nullable=False,
        default='ok',
        comment='ok or degraded (model call or parse failed)'
    )

    # Audit fields
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class ProcessedResult(Base):
    """Numeric flattening of ``ResponseResult`` used by reports."""
    __tablename__ = 'processed_data'

    id = Column(Integer, primary_key=True, autoincrement=True)
    qa_name = Column(Text, default='AIVA')
    agent_caller_name = Column(Text)

    opening_response_time = Column(Numeric)
    ongoing_response_time = Column(Numeric)
    holding_management = Column(Numeric)
    closing_management = Column(Numeric)
    verification_efficiency = Column(Numeric)
    thoroughness = Column(Numeric)
    proactiveness = Column(Numeric)
    relevance_and_clarity = Column(Numeric)
    language_natural_flow = Column(Numeric)
    correction = Column(Numeric)
    proper_empathy_acknowledgement = Column(Numeric)
    overall_chat_handling_customer_experience = Column(Numeric)

    breach_confidentiality = Column(Boolean)
    rudeness_unprofessionalism = Column(Boolean)

    scoring = Column(Numeric(5, 2))
    results = Column(Text)
    agent_status = Column(Text)
