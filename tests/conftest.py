import io
import os
from types import SimpleNamespace

# Must be set before config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FILE"] = ""
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("API_KEY", None)

import pytest
from PIL import Image

from database import Database, RecordStore, StudentStore
from models import Student, utcnow


def make_image(width=64, height=48, fmt="JPEG", color=(120, 80, 200)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_student(student_id, name) -> Student:
    return Student(
        id=student_id,
        name=name,
        photo=make_image(32, 32),
        photo_mime_type="image/jpeg",
        enrolled_at=utcnow()
    )


class FakeModels:
    """Stands in for ``client.aio.models`` of google-genai."""

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


class FakeGenaiClient:
    def __init__(self, text=None, error=None):
        self.models = FakeModels(text=text, error=error)
        self.aio = SimpleNamespace(models=self.models)


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.open()
    yield db
    db.close()


@pytest.fixture
def student_store(database):
    return StudentStore(database)


@pytest.fixture
def record_store(database):
    return RecordStore(database)


@pytest.fixture
def roster():
    return [make_student("a", "Alice"), make_student("b", "Bob")]
