import pytest

from qa_reader.common.errors import InvalidRequestError
from qa_reader.services.criteria import CriteriaService, criteria_totals
from qa_reader.services.datasets import CRITERIA_SCORING, replace_dataset

COLUMNS = ["customer_type", "criteria", "sub_criteria", "weightage"]
RUBRIC = [
    ["Normal Customer", "Thoroughness", "Asks questions", "20"],
    ["Normal Customer", "Thoroughness", "Confirms issue", "15"],
    ["Normal Customer", "Correction", "Fixes errors", "7"],
    ["Premier", "Thoroughness", "Asks questions", "25"],
    ["Premier", "Correction", "", "n/a"],
]


def test_criteria_totals_take_max_weight_per_criterion():
    rows = [dict(zip(COLUMNS, r)) for r in RUBRIC]
    assert criteria_totals(rows) == {"normal": 27.0, "premier": 25.0}
    assert criteria_totals([]) == {}


def test_get_missing_table(engine, registry, storage):
    assert CriteriaService(engine, registry, storage).get() == {"columns": [], "rows": [], "totals": {}}


def test_get_and_update(engine, registry, storage):
    replace_dataset(engine, registry, CRITERIA_SCORING, COLUMNS, RUBRIC)
    service = CriteriaService(engine, registry, storage)

    data = service.get()
    assert data["columns"] == ["_row_id"] + COLUMNS
    assert data["rows"][0]["_row_id"] == 1
    assert data["totals"]["normal"] == 27.0

    result = service.update_row(1, {"weightage": "30", "not_a_column": "x"})
    assert result["ok"] is True
    assert result["row"]["weightage"] == "30"
    assert service.get()["totals"]["normal"] == 37.0

    assert service.update_row(1, {"bogus": "x"}) == {"ok": True, "unchanged": True}
    with pytest.raises(InvalidRequestError, match="id and updates required"):
        service.update_row(None, {"weightage": "1"})


def test_batch_update(engine, registry, storage):
    replace_dataset(engine, registry, CRITERIA_SCORING, COLUMNS, RUBRIC)
    service = CriteriaService(engine, registry, storage)

    result = service.batch_update([
        {"id": 3, "updates": {"weightage": "10"}},
        {"id": 4, "updates": {"sub_criteria": None}},
        {"updates": {"weightage": "99"}},
    ])

    assert result == {"ok": True, "affected": 2}
    rows = {r["_row_id"]: r for r in service.get()["rows"]}
    assert rows[3]["weightage"] == "10"
    assert rows[4]["sub_criteria"] is None
    with pytest.raises(InvalidRequestError, match="updates array required"):
        service.batch_update([])


def test_reset_from_storage(engine, registry, storage):
    service = CriteriaService(engine, registry, storage)
    with pytest.raises(InvalidRequestError, match="No criteria file found in storage"):
        service.reset_from_storage()

    storage.upload("criteria_scoring/100_old.csv", b"Customer Type,Criteria,Weightage\nNormal,Old,1\n")
    storage.upload("criteria_scoring/200_new.csv", b"Customer Type,Criteria,Weightage\nNormal,New,5\n")

    assert service.reset_from_storage() == {"ok": True, "reset": True}
    rows = service.get()["rows"]
    assert [r["criteria"] for r in rows] == ["New"]


@pytest.mark.parametrize("bad_id", ["abc", "1.5", [1], True])
def test_malformed_row_ids_are_rejected(engine, registry, storage, bad_id):
    replace_dataset(engine, registry, CRITERIA_SCORING, COLUMNS, RUBRIC)
    service = CriteriaService(engine, registry, storage)

    with pytest.raises(InvalidRequestError, match="Invalid row id"):
        service.update_row(bad_id, {"weightage": "1"})
    with pytest.raises(InvalidRequestError, match="Invalid row id"):
        service.batch_update([{"id": 1, "updates": {"weightage": "50"}}, {"id": bad_id, "updates": {"weightage": "1"}}])

    assert service.get()["rows"][0]["weightage"] == "20"
