import random

import pytest

from qa_reader.common.errors import InvalidRequestError, SourceMissingError
from qa_reader.services import datasets, sampling
from qa_reader.services.datasets import DATA_SNAPSHOT, SAMPLING_DATA, replace_dataset
from qa_reader.services.sampling import (
    SamplingParams, clamp_percent, draw_sample, drop_sampling, normalize_mode, run_sampling,
    sampling_preview, take_count
)

SNAPSHOT_COLUMNS = ["id", "agent", "actual_agent", "vip_status"]


def snapshot_rows():
    rows = []
    for i in range(12):
        rows.append({
            "id": str(i),
            "agent": f"raw{i % 4}",
            "actual_agent": f"Agent {i % 4}" if i % 4 else None,
            "vip_status": "vip" if i % 3 == 0 else "normal",
        })
    return rows


@pytest.mark.parametrize(
    "mode, percent, population, expected",
    [
        ("percent", 1, 3, 1),
        ("percent", 30, 10, 3),
        ("percent", 0, 10, 0),
        ("percent", 100, 7, 7),
        ("percent", 33.3, 3, 1),
        ("percent", 50, 0, 0),
        ("all", 0, 9, 9),
    ],
)
def test_take_count(mode, percent, population, expected):
    assert take_count(mode, percent, population) == expected


def test_param_coercion():
    assert normalize_mode("PERCENT") == "all"
    assert normalize_mode("percent") == "percent"
    assert clamp_percent(None) == 100.0
    assert clamp_percent(-5) == 0.0
    assert clamp_percent("250") == 100.0
    with pytest.raises(InvalidRequestError):
        clamp_percent("lots")
    with pytest.raises(InvalidRequestError):
        clamp_percent(float("nan"))


def test_all_modes_keep_normal_rows_then_vip_rows():
    rows = snapshot_rows()
    assert draw_sample(rows, SamplingParams.build()) == [r for r in rows if r["vip_status"] == "normal"] + [
        r for r in rows if r["vip_status"] == "vip"
    ]


def test_stages_only_keep_picked_agents():
    rows = snapshot_rows()
    params = SamplingParams.build(agent_mode="percent", agent_percent=25)
    sample = draw_sample(rows, params, random.Random(7))
    keys = {r["actual_agent"] if r["actual_agent"] is not None else r["agent"] for r in sample}
    assert len(keys) == 1
    assert sample and all(r in rows for r in sample)


def test_strata_are_sampled_independently():
    rows = snapshot_rows()
    params = SamplingParams.build(normal_mode="percent", normal_percent=0, vip_mode="percent", vip_percent=50)
    sample = draw_sample(rows, params, random.Random(1))
    assert all(r["vip_status"] == "vip" for r in sample)
    assert len(sample) == 2


def test_chat_share_applies_to_the_union():
    rows = snapshot_rows()
    sample = draw_sample(rows, SamplingParams.build(chat_mode="percent", chat_percent=10), random.Random(3))
    assert len(sample) == 2
    assert len({r["id"] for r in sample}) == 2


def test_seeded_draws_repeat():
    rows = snapshot_rows()
    params = SamplingParams.build(agent_mode="percent", agent_percent=50, chat_mode="percent", chat_percent=50)
    assert draw_sample(rows, params, random.Random(42)) == draw_sample(rows, params, random.Random(42))


def test_run_sampling_requires_snapshot(engine, registry):
    with pytest.raises(SourceMissingError, match="data_snapshot missing"):
        run_sampling(engine, registry, SamplingParams.build())


def test_run_sampling_all_mode_is_idempotent(engine, registry):
    rows = snapshot_rows()
    replace_dataset(engine, registry, DATA_SNAPSHOT, SNAPSHOT_COLUMNS, [[r[c] for c in SNAPSHOT_COLUMNS] for r in rows])

    first = run_sampling(engine, registry, SamplingParams.build())
    second = run_sampling(engine, registry, SamplingParams.build())

    assert first["ok"] and first["exists"]
    assert first["total"] == second["total"] == len(rows)
    assert first["columns"] == SNAPSHOT_COLUMNS
    assert sorted(r["id"] for r in second["rows"]) == sorted(r["id"] for r in rows)


def test_preview_and_drop(engine, registry):
    assert sampling_preview(engine, registry) == {"exists": False, "columns": [], "rows": [], "total": 0}
    replace_dataset(engine, registry, SAMPLING_DATA, ["id"], [[str(i)] for i in range(60)])

    preview = sampling_preview(engine, registry)
    assert preview["total"] == 60 and len(preview["rows"]) == 50

    assert drop_sampling(engine, registry) == {"ok": True, "dropped": True, "total": 0}
    assert sampling_preview(engine, registry)["exists"] is False


def test_snapshot_is_read_under_the_sampling_lock(engine, registry, monkeypatch):
    rows = snapshot_rows()
    replace_dataset(engine, registry, DATA_SNAPSHOT, SNAPSHOT_COLUMNS, [[r[c] for c in SNAPSHOT_COLUMNS] for r in rows])
    events = []

    def record(label, func):
        def wrapper(conn, name, *args, **kwargs):
            events.append((label, name, conn))
            return func(conn, name, *args, **kwargs)
        return wrapper

    monkeypatch.setattr(sampling, "lock_table", record("lock", sampling.lock_table))
    monkeypatch.setattr(sampling, "read_rows", record("read", datasets.read_rows))

    run_sampling(engine, registry, SamplingParams.build())

    assert [(label, name) for label, name, _ in events[:2]] == [("lock", SAMPLING_DATA), ("read", DATA_SNAPSHOT)]
    assert events[0][2] is events[1][2]
