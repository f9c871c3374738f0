"""
Scoring Pipeline

Scores every sampled chat against the weighted QA rubric with one chat
completion call per record, then persists the result into
``response_result``.

Processing flow:
1. Fail fast on missing configuration, credential, sample or rubric
2. For each sampled record: extract transcript -> build prompt -> call model
3. Tag the outcome (ok / degraded); failures never abort the batch
4. Format criterion cells, compute the weighted final score
5. Upsert by sampling id (or content hash) and track token usage

Author: The Reader Team
Date: 2026-10-19
"""

import csv
import hashlib
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional

from prometheus_client import Counter
from sqlalchemy import Connection, Engine, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from qa_reader.common.config import settings
from qa_reader.common.errors import ConfigurationError, InvalidRequestError, SourceMissingError
from qa_reader.common.models import CRITERIA, ApiConfiguration, ResponseResult
from qa_reader.services.datasets import (
    CRITERIA_SCORING, SAMPLING_DATA, DatasetRegistry, read_rows
)
from qa_reader.services.llm_client import LLMCallError, LLMClientFactory, provider_model_id

logger = logging.getLogger("scoring")

SCORED_RECORDS = Counter('reader_scored_records_total', 'Scored chat records', ['outcome'])

# Criterion weights in percent, summing to 100
WEIGHTS: Dict[str, int] = {
    'opening_response_time': 4,
    'ongoing_response_time': 4,
    'holding_management': 4,
    'closing_management': 4,
    'verification_efficiency': 20,
    'thoroughness': 20,
    'proactiveness': 4,
    'relevance_and_clarity': 4,
    'language_natural_flow': 10,
    'correction': 7,
    'proper_empathy_acknowledgement': 14,
    'overall_chat_handling_customer_experience': 5,
}

TRANSCRIPT_FIELDS = ('content', 'message', 'chat_content', 'transcript')
ID_FIELDS = ('id', 'ID', 'chat_id', 'uuid')
AGENT_FIELDS = ('actual_agent', 'agent', 'agent_name')
FALLBACK_MAX_LINES = 20
FALLBACK_MAX_VALUE = 2000
COMMENT_MAX_CHARS = 500
SOURCE_KEY_CONTENT_CHARS = 256

OUTCOME_OK = 'ok'
OUTCOME_DEGRADED = 'degraded'

SYSTEM_PROMPT = """You are a QA evaluator. Score the chat against the rubric. Return strict JSON (no prose) with this shape:
{
  "criteria": {
""" + ",\n".join(
    f'    "{key}": {{ "score": 0-100, "comment": string }}' for key in CRITERIA
) + """
  },
  "breach_confidentiality_auto_failed": true|false,
  "rudeness_unprofessionalism_auto_failed": true|false,
  "csat_rating": string,
  "csat_handling_category": string,
  "quality_assurance_feedback": string
}
If either auto-fail is true, the overall final score is 0. Base scores on the transcript only. Just return JSON."""


def _first_present(record: Mapping[str, Any], keys) -> Optional[Any]:
    for key in keys:
        value = record.get(key)
        if value is not None and str(value) != '':
            return value
    return None


def extract_transcript(record: Mapping[str, Any], max_chars: Optional[int] = None) -> str:
    """
    Pick the chat text of a record.

    Uses the first non-empty transcript field; otherwise joins up to 20
    ``key: value`` lines from short string fields. Capped at ``max_chars``.
    """
    max_chars = max_chars or settings.transcript_max_chars
    text = _first_present(record, TRANSCRIPT_FIELDS)
    if text is None:
        lines = []
        for key, value in record.items():
            if isinstance(value, str) and value and len(value) <= FALLBACK_MAX_VALUE:
                lines.append(f"{key}: {value}")
            if len(lines) >= FALLBACK_MAX_LINES:
                break
        text = '\n'.join(lines)
    return str(text)[:max_chars]


def agent_for(record: Mapping[str, Any]) -> str:
    value = _first_present(record, AGENT_FIELDS)
    return '' if value is None else str(value)


def stable_id(record: Mapping[str, Any]) -> Optional[str]:
    value = _first_present(record, ID_FIELDS)
    return None if value is None else str(value)


def source_key(sampling_id: Optional[str], start_time: Optional[str], transcript: str) -> str:
    """SHA-256 hex of ``sampling_id|start_time|transcript[:256]``."""
    base = f"{sampling_id or ''}|{start_time or ''}|{transcript[:SOURCE_KEY_CONTENT_CHARS]}"
    return hashlib.sha256(base.encode('utf-8')).hexdigest()


def parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError:
        return None


def rubric_snippet(rubric_rows: List[Dict[str, Any]], max_chars: Optional[int] = None) -> str:
    max_chars = max_chars or settings.rubric_prompt_chars
    return json.dumps(rubric_rows, ensure_ascii=False, separators=(',', ':'), default=str)[:max_chars]


def build_messages(record: Mapping[str, Any], rubric_json: str, transcript: str) -> List[Dict[str, str]]:
    user = (
        f"Rubric (rows): {rubric_json}\n\n"
        f"Agent: {agent_for(record)}\n"
        f"Start: {record.get('start_time') or ''}\n"
        f"End: {record.get('end_time') or ''}\n"
        f"Chat content (UTF-8):\n{transcript}"
    )
    return [
        {'role': 'system', 'content': SYSTEM_PROMPT},
        {'role': 'user', 'content': user},
    ]


def clamp_score(value: Any) -> float:
    try:
        number = float(value if value is not None else 0)
    except (TypeError, ValueError):
        return 0.0
    if number != number:
        return 0.0
    return max(0.0, min(100.0, number))


def _number_text(value: float) -> str:
    return str(int(value)) if value == int(value) else str(value)


def format_criterion(score: Any, comment: Any) -> str:
    text = '' if comment is None else str(comment)
    return f"{_number_text(clamp_score(score))}/100 - {text[:COMMENT_MAX_CHARS]}"


def is_flag_set(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', 'yes', '1')
    return bool(value)


def compute_final_score(criteria: Mapping[str, Any], breach: bool, rude: bool) -> float:
    """
    Weighted average of the clamped criterion scores.

    Returns exactly 0 when either auto-fail flag is set; otherwise the
    average rounded half-up to two decimals. Missing criteria score 0.
    """
    if breach or rude:
        return 0.0
    total = 0.0
    weight_sum = 0
    for key, weight in WEIGHTS.items():
        entry = criteria.get(key) if isinstance(criteria, Mapping) else None
        score = entry.get('score') if isinstance(entry, Mapping) else None
        total += clamp_score(score) * weight
        weight_sum += weight
    if not weight_sum:
        return 0.0
    return float(Decimal(repr(total / weight_sum)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


@dataclass
class EvaluationOutcome:
    """Tagged result of one model call: ``ok`` or ``degraded`` with a reason."""
    status: str
    evaluation: Dict[str, Any]
    reason: Optional[str] = None
    total_tokens: int = 0

    @property
    def degraded(self) -> bool:
        return self.status == OUTCOME_DEGRADED


def parse_evaluation(content: str) -> EvaluationOutcome:
    try:
        parsed = json.loads(content)
    except (TypeError, ValueError) as ex:
        return EvaluationOutcome(OUTCOME_DEGRADED, {'quality_assurance_feedback': content}, f"Unparseable output: {ex}")
    if not isinstance(parsed, dict):
        return EvaluationOutcome(OUTCOME_DEGRADED, {'quality_assurance_feedback': content}, "Output is not a JSON object")
    if not isinstance(parsed.get('criteria'), Mapping):
        return EvaluationOutcome(OUTCOME_DEGRADED, {'quality_assurance_feedback': content}, "Output has no criteria object")
    return EvaluationOutcome(OUTCOME_OK, parsed)


def evaluate_record(
    client,
    model_id: str,
    record: Mapping[str, Any],
    rubric_json: str,
    transcript: str,
) -> EvaluationOutcome:
    """Call the model for one record; every failure becomes a degraded outcome."""
    messages = build_messages(record, rubric_json, transcript)
    try:
        completion = client.complete_json(model_id, messages, settings.llm_max_tokens)
    except LLMCallError as ex:
        return EvaluationOutcome(
            OUTCOME_DEGRADED,
            {'quality_assurance_feedback': f"Model error: {ex}"},
            str(ex)
        )
    outcome = parse_evaluation(completion.content)
    outcome.total_tokens = completion.total_tokens
    return outcome


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)


def result_values(record: Mapping[str, Any], transcript: str, outcome: EvaluationOutcome) -> Dict[str, Any]:
    """Map one record and its evaluation onto ``response_result`` columns."""
    evaluation = outcome.evaluation
    criteria = evaluation.get('criteria')
    if not isinstance(criteria, Mapping):
        criteria = {}
    breach = is_flag_set(evaluation.get('breach_confidentiality_auto_failed'))
    rude = is_flag_set(evaluation.get('rudeness_unprofessionalism_auto_failed'))
    sampling_id = stable_id(record)
    start_raw = record.get('start_time')
    agent = agent_for(record)

    values: Dict[str, Any] = {
        'source_key': source_key(sampling_id, start_raw, transcript),
        'sampling_id': sampling_id,
        'start_time': parse_time(start_raw),
        'completion_time': parse_time(record.get('end_time')),
        'qa_name': _text(evaluation.get('qa_name')),
        'chat_link': _text(evaluation.get('chat_link')),
        'agent_caller_name': agent or None,
        'chat_date_time': parse_time(start_raw),
        'chat_duration': _text(evaluation.get('chat_duration')) or record.get('duration'),
        'breach_confidentiality_auto_failed': breach,
        'rudeness_unprofessionalism_auto_failed': rude,
        'csat_rating': _text(evaluation.get('csat_rating')),
        'csat_handling_category': _text(evaluation.get('csat_handling_category')),
        'quality_assurance_feedback': _text(evaluation.get('quality_assurance_feedback')),
        'final_score': compute_final_score(criteria, breach, rude),
        'outcome': outcome.status,
    }
    for key in CRITERIA:
        entry = criteria.get(key)
        if not isinstance(entry, Mapping):
            entry = {}
        values[key] = format_criterion(entry.get('score'), entry.get('comment'))
    return values


def upsert_result(conn: Connection, values: Dict[str, Any]) -> None:
    """
    Insert or overwrite one result.

    Conflicts resolve on ``sampling_id`` when the record has one, else on
    ``source_key``.
    """
    if conn.dialect.name == 'postgresql':
        stmt = postgresql.insert(ResponseResult).values(**values)
    elif conn.dialect.name == 'sqlite':
        stmt = sqlite.insert(ResponseResult).values(**values)
    else:
        raise ConfigurationError(f"Unsupported database dialect: {conn.dialect.name}")

    target = 'sampling_id' if values.get('sampling_id') else 'source_key'
    update = {key: stmt.excluded[key] for key in values if key != target}
    conn.execute(stmt.on_conflict_do_update(index_elements=[target], set_=update))


def current_month() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m')


def record_usage(engine: Engine, tokens: int) -> None:
    """Add tokens to the monthly counter, restarting it when the month changed."""
    if tokens <= 0:
        return
    month = current_month()
    with Session(engine) as session, session.begin():
        config = session.get(ApiConfiguration, 1)
        if config is None:
            return
        if config.usage_month != month:
            config.usage_month = month
            config.usage_tokens = 0
        config.usage_tokens = (config.usage_tokens or 0) + tokens


@dataclass
class BatchSummary:
    processed: int = 0
    degraded: int = 0
    skipped: int = 0
    total_tokens: int = 0
    degraded_ids: List[Optional[str]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'ok': True,
            'processed': self.processed,
            'degraded': self.degraded,
            'skipped': self.skipped,
            'total_tokens': self.total_tokens,
        }


class ScoringPipeline:
    """
    Sequential batch scorer over ``sampling_data``.

    Args:
        engine: Database engine
        registry: Dataset schema registry
        client_factory: Builds a chat completion client from the credential
        api_key: Decrypted provider credential
    """

    def __init__(
        self,
        engine: Engine,
        registry: DatasetRegistry,
        client_factory: LLMClientFactory,
        api_key: Optional[str],
    ):
        self.engine = engine
        self.registry = registry
        self.client_factory = client_factory
        self.api_key = api_key

    def _load_model_label(self) -> str:
        with Session(self.engine) as session:
            config = session.get(ApiConfiguration, 1)
            if config is None:
                raise ConfigurationError("API configuration not set")
            return config.model or 'GPT-5 mini'

    def _load_inputs(self, limit: Optional[int]):
        with self.engine.connect() as conn:
            sample_columns = self.registry.columns(conn, SAMPLING_DATA)
            if sample_columns is None:
                raise SourceMissingError("sampling_data table not found")
            rubric_columns = self.registry.columns(conn, CRITERIA_SCORING)
            if not rubric_columns:
                raise ConfigurationError("criteria_scoring rubric missing")

            order_by = [(col, False) for col in ('customer_type', 'criteria') if col in rubric_columns]
            rubric = read_rows(conn, CRITERIA_SCORING, rubric_columns, order_by=order_by)
            if not rubric:
                raise ConfigurationError("criteria_scoring rubric is empty")

            records = read_rows(conn, SAMPLING_DATA, sample_columns, limit=limit)
        return rubric, records

    def run(self, limit: Optional[int] = None, replace: bool = False) -> Dict[str, Any]:
        """
        Score the sampled chats.

        Args:
            limit: Maximum number of sampled records (clamped to 1..scoring_max_limit)
            replace: Clear all previous results before scoring

        Returns:
            dict: ``processed``, ``degraded``, ``skipped`` and ``total_tokens``

        Raises:
            ConfigurationError: Missing configuration, credential or rubric
            SourceMissingError: ``sampling_data`` does not exist
        """
        if limit is not None:
            try:
                limit = max(1, min(settings.scoring_max_limit, int(limit)))
            except (TypeError, ValueError) as ex:
                raise InvalidRequestError(f"Invalid limit: {limit!r}") from ex

        model_label = self._load_model_label()
        if not self.api_key:
            raise ConfigurationError("Missing OpenAI key")
        rubric, records = self._load_inputs(limit)

        ResponseResult.__table__.create(self.engine, checkfirst=True)
        if replace:
            with self.engine.begin() as conn:
                conn.execute(delete(ResponseResult))
            logger.info("Cleared response_result before scoring")

        model_id = provider_model_id(model_label)
        rubric_json = rubric_snippet(rubric)
        summary = BatchSummary()
        logger.info(f"Scoring {len(records)} sampled record(s) with {model_id}")

        client = self.client_factory(self.api_key)
        try:
            for record in records:
                transcript = extract_transcript(record)
                if not transcript:
                    summary.skipped += 1
                    continue

                outcome = evaluate_record(client, model_id, record, rubric_json, transcript)
                values = result_values(record, transcript, outcome)
                with self.engine.begin() as conn:
                    upsert_result(conn, values)

                summary.processed += 1
                summary.total_tokens += outcome.total_tokens
                SCORED_RECORDS.labels(outcome=outcome.status).inc()
                if outcome.degraded:
                    summary.degraded += 1
                    summary.degraded_ids.append(values['sampling_id'])
                    logger.warning(
                        f"Degraded evaluation for sampling_id={values['sampling_id']}: {outcome.reason}"
                    )
        finally:
            client.close()

        record_usage(self.engine, summary.total_tokens)
        logger.info(
            f"Scoring done: {summary.processed} processed, {summary.degraded} degraded, "
            f"{summary.skipped} skipped"
        )
        return summary.as_dict()


def init_results(engine: Engine) -> None:
    ResponseResult.__table__.create(engine, checkfirst=True)


def reset_results(engine: Engine, registry: DatasetRegistry) -> None:
    """Recreate ``response_result`` empty; requires ``sampling_data``."""
    ResponseResult.__table__.drop(engine, checkfirst=True)
    ResponseResult.__table__.create(engine)
    logger.info("response_result recreated")
    with engine.connect() as conn:
        if registry.columns(conn, SAMPLING_DATA) is None:
            raise SourceMissingError("sampling_data table not found")


RESULT_COLUMNS = [col.name for col in ResponseResult.__table__.columns]


def list_results(engine: Engine, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
    """Newest results first, with the total row count."""
    limit = max(1, min(200, limit))
    offset = max(0, offset)
    table = ResponseResult.__table__
    with engine.connect() as conn:
        rows = conn.execute(
            select(table).order_by(table.c.created_at.desc()).limit(limit).offset(offset)
        ).mappings().all()
        total = conn.execute(select(func.count()).select_from(table)).scalar() or 0
    return {'ok': True, 'rowsTotal': int(total), 'columns': RESULT_COLUMNS, 'rows': [dict(r) for r in rows]}


def results_csv(engine: Engine, max_rows: int = 1000) -> str:
    table = ResponseResult.__table__
    with engine.connect() as conn:
        rows = conn.execute(
            select(table).order_by(table.c.created_at.desc()).limit(max_rows)
        ).mappings().all()

    out = io.StringIO()
    writer = csv.writer(out, lineterminator='\n')
    writer.writerow(RESULT_COLUMNS)
    for row in rows:
        writer.writerow(['' if row[col] is None else row[col] for col in RESULT_COLUMNS])
    return out.getvalue()
