from types import SimpleNamespace
import json
import pytest
from fastapi.testclient import TestClient
from formcraft.core.auth import create_token
from formcraft.core.cache import ViewCounter
from formcraft.core.config import Settings
from formcraft.main import create_app
from formcraft.services.generation import FormGenerator
from formcraft.services.storage import BlobStore

class FakeRedis:
    def __init__(self):
        self.data = {}
    def incr(self, key, amount=1):
        self.data[key] = int(self.data.get(key, 0)) + amount
        return self.data[key]
    def mget(self, keys):
        return [self.data.get(k) for k in keys]
    def delete(self, *keys):
        for k in keys: self.data.pop(k, None)
    def close(self):
        pass

class FakeS3:
    def __init__(self, fail=False):
        self.objects = {}; self.fail = fail; self.buckets = set()
    def put_object(self, Bucket, Key, Body, ContentType):
        if self.fail:
            from botocore.exceptions import ClientError
            raise ClientError({"Error": {"Code": "500", "Message": "down"}}, "PutObject")
        self.objects[Key] = (Body, ContentType)
    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)
    def head_bucket(self, Bucket):
        if Bucket not in self.buckets:
            from botocore.exceptions import ClientError
            raise ClientError({"Error": {"Code": "404", "Message": "missing"}}, "HeadBucket")
    def create_bucket(self, Bucket):
        self.buckets.add(Bucket)

class FakeCompletions:
    def __init__(self):
        self.calls = []; self.content = json.dumps({"title": "Contact", "description": "", "fields": []})
        self.error = None
    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error: raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=None, model=kwargs["model"])

class FakeOpenAI:
    def __init__(self):
        self.chat = SimpleNamespace(completions=FakeCompletions())

@pytest.fixture
def settings():
    return Settings(_env_file=None, DATABASE_URL="sqlite://", SECRET_KEY="test-secret",
                    PUBLIC_BASE_URL="http://share.test", OPENAI_API_KEY=None,
                    S3_ACCESS_KEY_ID=None, S3_SECRET_ACCESS_KEY=None, SENTRY_DSN=None,
                    PROMETHEUS_ENABLED=False, MAX_UPLOAD_SIZE=1024)

@pytest.fixture
def openai_client():
    return FakeOpenAI()

@pytest.fixture
def redis_client():
    return FakeRedis()

@pytest.fixture
def app(settings, openai_client, redis_client):
    return create_app(settings, view_counter=ViewCounter(redis_client), blob_store=BlobStore(settings),
                      generator=FormGenerator(settings, client=openai_client))

@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c

@pytest.fixture
def db(app, client):
    s = app.state.session_factory()
    yield s
    s.close()

@pytest.fixture
def auth(settings):
    def make(user_id="alice"):
        return {"Authorization": f"Bearer {create_token(user_id, settings)}"}
    return make

@pytest.fixture
def make_form(client, auth):
    def make(fields=None, title="Job Application Form", user_id="alice", **extra):
        body = {"title": title, "description": "Apply here", "fields": fields or [], **extra}
        r = client.post("/api/forms", json=body, headers=auth(user_id)); assert r.status_code == 201, r.text
        return r.json()["form"]
    return make
