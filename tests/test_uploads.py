import pytest
from botocore.exceptions import ClientError

from qa_reader.common.errors import InvalidRequestError, StorageError
from qa_reader.common.storage import key_timestamp, object_key, original_name, pick_latest
from qa_reader.services.datasets import DATA_SNAPSHOT, RAW_CHAT, read_rows
from qa_reader.services.uploads import UploadService

RAW_CSV = b"ID,Agent,Custom Variables,Start Time\n1,Ann,type:VIP,2024-01-01\n2,Bo,,2024-01-02\n"
ROSTER_CSV = b"Specialist Name as per Schedule,Specialist Live Chat Name,Market\nAnn Lee,ann,SG\n"


def test_object_key_and_helpers():
    key = object_key("raw_chat", "my chats (v2).csv", now_ms=1700000000000)
    assert key == "raw_chat/1700000000000_my_chats_v2_.csv"
    assert key_timestamp(key) == 1700000000000
    assert original_name(key) == "my_chats_v2_.csv"
    assert key_timestamp("raw_chat/readme.csv") == 0


def test_pick_latest():
    assert pick_latest([]) is None
    keys = ["raw_chat/100_a.csv", "raw_chat/2000_b.csv", "raw_chat/300_c.csv"]
    assert pick_latest(keys) == "raw_chat/2000_b.csv"


def test_keep_latest_removes_other_objects(storage, s3_client):
    for key in ("raw_chat/1_a.csv", "raw_chat/2_b.csv", "agent_info/1_x.csv"):
        storage.upload(key, b"x")
    stale = storage.keep_latest("raw_chat", "raw_chat/2_b.csv")
    assert stale == ["raw_chat/1_a.csv"]
    assert sorted(s3_client.objects) == ["agent_info/1_x.csv", "raw_chat/2_b.csv"]


def test_storage_errors_are_wrapped(storage, s3_client):
    def fail(**kwargs):
        raise ClientError({"Error": {"Code": "NoSuchBucket", "Message": "gone"}}, "HeadBucket")

    s3_client.head_bucket = fail
    with pytest.raises(StorageError):
        storage.ping()


def test_upload_materializes_and_rebuilds_snapshot(engine, registry, storage, s3_client):
    service = UploadService(engine, registry, storage)
    storage.upload("raw_chat/1_old.csv", b"old")

    result = service.upload_file("raw_chat", "chats.csv", RAW_CSV)

    assert result["ok"] is True
    assert result["columns"] == ["id", "agent", "custom_variables", "start_time"]
    assert result["rows"] == 2
    assert result["snapshot_rows"] == 2
    assert list(s3_client.objects) == [result["object"]]

    with engine.connect() as conn:
        snapshot = read_rows(conn, DATA_SNAPSHOT, registry.columns(conn, DATA_SNAPSHOT))
    assert [r["vip_status"] for r in snapshot] == ["vip", "normal"]


def test_roster_upload_enriches_snapshot(engine, registry, storage):
    service = UploadService(engine, registry, storage)
    service.upload_file("raw_chat", "chats.csv", RAW_CSV)
    service.upload_file("agent_info", "roster.csv", ROSTER_CSV)

    with engine.connect() as conn:
        snapshot = read_rows(conn, DATA_SNAPSHOT, registry.columns(conn, DATA_SNAPSHOT))
    assert (snapshot[0]["actual_agent"], snapshot[0]["market"]) == ("Ann Lee", "SG")


def test_bad_file_leaves_storage_untouched(engine, registry, storage, s3_client):
    service = UploadService(engine, registry, storage)
    with pytest.raises(InvalidRequestError):
        service.upload_file("raw_chat", "empty.csv", b"")
    with pytest.raises(InvalidRequestError, match="Invalid type"):
        service.upload_file("payroll", "x.csv", RAW_CSV)
    assert s3_client.objects == {}


def test_ingest_presigned_object(engine, registry, storage, s3_client):
    service = UploadService(engine, registry, storage)
    presigned = service.presign("criteria_scoring", "rubric.csv")
    assert presigned["bucket"] == "uploads"
    assert presigned["path"].startswith("criteria_scoring/")
    assert presigned["url"].startswith("https://storage.test/uploads/criteria_scoring/")

    s3_client.objects[presigned["path"]] = b"Customer Type,Criteria,Weightage\nNormal,Thoroughness,20\n"
    result = service.ingest_object("criteria_scoring", presigned["path"])

    assert result["rows"] == 1
    assert result["snapshot_rows"] is None
    with pytest.raises(InvalidRequestError):
        service.ingest_object("raw_chat", presigned["path"])


def test_latest_preview_and_delete(engine, registry, storage, s3_client):
    service = UploadService(engine, registry, storage)
    assert service.preview("raw_chat") == {"type": "raw_chat", "columns": [], "rows": [], "total": 0}

    uploaded = service.upload_file("raw_chat", "chats.csv", RAW_CSV)
    latest = service.latest()
    assert latest["raw_chat"]["objectPath"] == uploaded["object"]
    assert latest["raw_chat"]["fileName"] == "chats.csv"
    assert latest["agent_info"] is None

    preview = service.preview("raw_chat")
    assert preview["total"] == 2
    assert preview["rows"][0]["agent"] == "Ann"

    assert service.delete("raw_chat") == {"ok": True}
    assert s3_client.objects == {}
    with engine.connect() as conn:
        assert registry.columns(conn, RAW_CHAT) is None
        assert registry.columns(conn, DATA_SNAPSHOT) is None
