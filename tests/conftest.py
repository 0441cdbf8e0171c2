from pathlib import Path
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from vibe.config import Settings
from vibe.db.crud import SqlStore
from vibe.db.database import init_db, make_engine, make_session_factory
from vibe.main import create_app
from vibe.services.base import Generator, Publisher, Synthesizer, Transcriber
from vibe.services.registry import Services


class FakeGenerator(Generator):
    name = "fake"

    def __init__(self, reply: str = "Hello from VIBE!", error: Optional[BaseException] = None):
        self.reply = reply
        self.error = error
        self.calls: List[str] = []

    async def generate_reply(self, system_prompt: str, user_text: str) -> str:
        self.calls.append(user_text)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeTranscriber(Transcriber):
    name = "fake"

    def __init__(self, transcript: str = "how are you", error: Optional[BaseException] = None):
        self.transcript = transcript
        self.error = error
        self.paths: List[Path] = []
        self.contents: List[bytes] = []

    async def transcribe(self, audio_path: Path) -> str:
        self.paths.append(audio_path)
        self.contents.append(audio_path.read_bytes())
        if self.error is not None:
            raise self.error
        return self.transcript


class FakeSynthesizer(Synthesizer):
    name = "fake"

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error
        self.texts: List[str] = []

    async def synthesize(self, text: str) -> bytes:
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        return b"ID3-fake-mp3"


class FakePublisher(Publisher):
    name = "fake"

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error
        self.published: List[tuple] = []

    @property
    def configured(self) -> bool:
        return True

    async def publish(self, data: bytes, filename: str, content_type: str) -> str:
        if self.error is not None:
            raise self.error
        self.published.append((data, filename, content_type))
        return f"https://storage.example.test/tts-audio/{filename}"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="production",
        uploads_dir=tmp_path / "uploads",
        database_url="sqlite://",
        rate_limit=0,
        general_rate_limit=0,
    )


@pytest.fixture
def sql_store() -> SqlStore:
    engine = make_engine("sqlite://")
    init_db(engine)
    return SqlStore(make_session_factory(engine))


@pytest.fixture
def services() -> Services:
    return Services(
        generator=FakeGenerator(),
        transcriber=FakeTranscriber(),
        synthesizer=FakeSynthesizer(),
        publisher=FakePublisher(),
    )


@pytest.fixture
def client(settings, services) -> TestClient:
    return TestClient(create_app(settings, services))

