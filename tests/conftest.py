import io
import json

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from qa_reader.common.db import Base
from qa_reader.common.models import CRITERIA
from qa_reader.common.storage import ObjectStorage
from qa_reader.services.datasets import DatasetRegistry
from qa_reader.services.llm_client import ChatCompletionClient


class FakePaginator:
    def __init__(self, objects):
        self.objects = objects

    def paginate(self, Bucket, Prefix):
        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        yield {'Contents': [{'Key': k} for k in keys]} if keys else {}


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls ObjectStorage makes."""

    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.objects[Key] = Body

    def get_paginator(self, name):
        assert name == 'list_objects_v2'
        return FakePaginator(self.objects)

    def get_object(self, Bucket, Key):
        return {'Body': io.BytesIO(self.objects[Key])}

    def delete_objects(self, Bucket, Delete):
        for obj in Delete['Objects']:
            self.objects.pop(obj['Key'], None)

    def generate_presigned_url(self, method, Params, ExpiresIn):
        return f"https://storage.test/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"

    def head_bucket(self, Bucket):
        return {}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def registry():
    return DatasetRegistry()


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def storage(s3_client):
    return ObjectStorage(s3_client, 'uploads')


def completion_body(content, total_tokens=10):
    return {
        'choices': [{'message': {'role': 'assistant', 'content': content}}],
        'usage': {'total_tokens': total_tokens},
    }


def evaluation_json(score=100, breach=False, rude=False, **extra):
    payload = {
        'criteria': {key: {'score': score, 'comment': f"{key} ok"} for key in CRITERIA},
        'breach_confidentiality_auto_failed': breach,
        'rudeness_unprofessionalism_auto_failed': rude,
        'csat_rating': 'Satisfied',
        'csat_handling_category': 'Resolved',
        'quality_assurance_feedback': 'Good chat',
    }
    payload.update(extra)
    return json.dumps(payload)


class RecordingFactory:
    """Client factory serving every request from ``handler`` and recording the calls."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []
        self.keys = []

    def _handle(self, request):
        self.requests.append(request)
        return self.handler(request)

    def __call__(self, api_key):
        self.keys.append(api_key)
        return ChatCompletionClient(
            api_key,
            base_url='https://llm.test/v1',
            transport=httpx.MockTransport(self._handle),
        )


@pytest.fixture
def llm_factory():
    def make(handler):
        return RecordingFactory(handler)
    return make
