from sqlalchemy.orm import Session

import pytest

from qa_reader.common.models import ResponseResult
from qa_reader.services.results import list_processed, process_results, score_cell_value


@pytest.mark.parametrize(
    "value, expected",
    [("85/100 - Polite", 85.0), ("Score 7 / 100 overall", 7.0), ("42", 42.0), ("4.5", 4.5),
     ("n/a", None), (None, None), ("inf", None)],
)
def test_score_cell_value(value, expected):
    assert score_cell_value(value) == expected


def add_result(engine, sampling_id, **fields):
    values = {
        "source_key": f"key-{sampling_id}",
        "sampling_id": sampling_id,
        "agent_caller_name": "Ann Lee",
        "thoroughness": "80/100 - fine",
        "final_score": 80,
    }
    values.update(fields)
    with Session(engine) as session, session.begin():
        session.add(ResponseResult(**values))


def test_process_flattens_results(engine):
    add_result(engine, "c1", breach_confidentiality_auto_failed=True, quality_assurance_feedback="Leaked data")
    add_result(engine, "c2", qa_name="Dana")

    assert process_results(engine) == {"ok": True, "inserted": 2}

    listing = list_processed(engine)
    assert listing["total"] == 2
    by_qa = {row["qa_name"]: row for row in listing["rows"]}
    assert set(by_qa) == {"AIVA", "Dana"}
    assert float(by_qa["AIVA"]["thoroughness"]) == 80.0
    assert by_qa["AIVA"]["opening_response_time"] is None
    assert by_qa["AIVA"]["breach_confidentiality"] is True
    assert by_qa["AIVA"]["results"] == "Leaked data"


def test_process_appends_unless_replaced(engine):
    add_result(engine, "c1")
    process_results(engine)
    process_results(engine)
    assert list_processed(engine)["total"] == 2

    assert process_results(engine, replace=True)["inserted"] == 1
    assert list_processed(engine)["total"] == 1
