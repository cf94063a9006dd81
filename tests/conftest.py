import asyncio
from io import BytesIO

import pytest
from fastapi.testclient import TestClient

from photostack.auth_utils import create_access_token
from photostack.blob_storage import StoredBlob
from photostack.cognitive import ImageAnalysis, SentimentResult
from photostack.config import Settings
from photostack.main import create_app
from photostack.memory_store import MemoryDatabase

SECRET = "test-secret"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeBlobStorage:
    def __init__(self):
        self.uploaded = []
        self.deleted = []
        self.fail_delete = False

    async def upload_image(self, data, filename, mime_type, owner_id):
        name = f"{owner_id}/{len(self.uploaded)}-{filename}"
        self.uploaded.append((name, mime_type, len(data)))
        return StoredBlob(url=f"https://blobs.test/photos/{name}", name=name)

    async def delete_image(self, blob_name):
        if self.fail_delete:
            raise RuntimeError("storage unavailable")
        self.deleted.append(blob_name)
        return True


class FakeImageAnalyzer:
    def __init__(self):
        self.result = ImageAnalysis(
            tags=["beach", "sunset"],
            description="a beach at sunset",
            dominant_colors=["Orange", "Blue"],
        )

    async def analyze(self, image_url):
        return self.result


class FakeSentimentAnalyzer:
    def __init__(self):
        self.result = SentimentResult(sentiment="positive", score=0.9)
        self.seen = []

    async def analyze(self, text):
        self.seen.append(text)
        return self.result


def make_token(oid, role=None, email=None, name=None, **claims):
    data = {"sub": oid, "oid": oid, **claims}
    if role:
        data["role"] = role
    if email is not None:
        data["email"] = email
    if name:
        data["name"] = name
    return create_access_token(data, SECRET)


def auth_headers(oid, role=None, email="default", name=None):
    if email == "default":
        email = f"{oid}@example.com"
    return {"Authorization": f"Bearer {make_token(oid, role=role, email=email, name=name)}"}


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def settings():
    return Settings(environment="test", secret_key=SECRET, use_mock_db=True, _env_file=None)


@pytest.fixture
def database():
    return MemoryDatabase()


@pytest.fixture
def storage():
    return FakeBlobStorage()


@pytest.fixture
def analyzer():
    return FakeImageAnalyzer()


@pytest.fixture
def sentiment():
    return FakeSentimentAnalyzer()


@pytest.fixture
def app(settings, database, storage, analyzer, sentiment):
    return create_app(
        settings,
        database=database,
        blob_storage=storage,
        image_analyzer=analyzer,
        sentiment_analyzer=sentiment,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def creator():
    return auth_headers("creator-1", role="creator", name="Cara Creator")


@pytest.fixture
def consumer():
    return auth_headers("consumer-1", role="consumer", name="Con Sumer")


@pytest.fixture
def upload(client, creator):
    def _upload(title="Sunset", headers=None, **form):
        response = client.post(
            "/api/photos",
            headers=headers or creator,
            data={"title": title, **form},
            files={"image": ("sunset.png", BytesIO(PNG_BYTES), "image/png")},
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _upload
