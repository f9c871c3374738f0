from botocore.exceptions import EndpointConnectionError

from qa_reader.common.init_db import create_tables
from qa_reader.services.datasets import RAW_CHAT, replace_dataset
from qa_reader.services.health import check_services, table_report


def test_services_healthy(engine, storage):
    result, healthy = check_services(engine, storage)
    assert healthy is True
    assert result == {"storageOk": True, "dbOk": True}


def test_storage_outage_is_reported(engine, storage, s3_client):
    def unreachable(**kwargs):
        raise EndpointConnectionError(endpoint_url="https://storage.test")

    s3_client.head_bucket = unreachable
    result, healthy = check_services(engine, storage)
    assert healthy is False
    assert result["dbOk"] is True
    assert result["storageOk"] is False
    assert "storage.test" in result["storageError"]


def test_table_report(engine, registry):
    replace_dataset(engine, registry, RAW_CHAT, ["id"], [["1"], ["2"]])
    report = table_report(engine)
    assert report[RAW_CHAT] == {"exists": True, "rowCount": 2}
    assert report["data_snapshot"] == {"exists": False, "rowCount": 0}
    assert report["response_result"] == {"exists": True, "rowCount": 0}


def test_create_tables_is_repeatable(engine):
    expected = ["ai_agent_config", "api_configuration", "dataset_schema", "processed_data", "response_result"]
    assert create_tables(engine) == expected
    assert create_tables(engine) == expected
