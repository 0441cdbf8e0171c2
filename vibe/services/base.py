from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class Generator(ABC):
    """Language-generation capability: system prompt + user turn -> text."""

    name: str

    @abstractmethod
    async def generate_reply(self, system_prompt: str, user_text: str) -> str:
        ...


class Transcriber(ABC):
    """Speech-to-text capability over a staged audio file."""

    name: str

    @abstractmethod
    async def transcribe(self, audio_path: Path) -> str:
        ...


class Synthesizer(ABC):
    """Speech-synthesis capability: text -> encoded audio bytes."""

    name: str
    content_type: str = "audio/mpeg"
    extension: str = "mp3"

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        ...


class Publisher(ABC):
    """Object storage: bytes -> publicly resolvable URL.

    Implementations raise StorageUnavailable on any failure.
    """

    name: str

    @property
    @abstractmethod
    def configured(self) -> bool:
        ...

    @abstractmethod
    async def publish(self, data: bytes, filename: str, content_type: str) -> str:
        ...


@dataclass
class SpeechOutcome:
    """Result of the optional synthesize-and-publish step.

    `url` is a resolvable URL or None; `error` holds whatever made it None.
    """

    url: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.url is not None
