from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PERSONALITY = "young_friend"
DEFAULT_LANGUAGE = "english"


def utc_now_iso() -> str:
    """ISO-8601 timestamp with millisecond precision, UTC, `Z` suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class MessageType(str, Enum):
    user = "user"
    bot = "bot"


class Message(BaseModel):
    # Older client-written documents carry numeric ids
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    type: MessageType
    content: str
    timestamp: str
    tts_audio_url: Optional[str] = Field(default=None, alias="ttsAudioUrl")
    is_error: bool = Field(default=False, alias="isError")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class TextTurnRequest(BaseModel):
    # Loosely typed; the gateway owns message validation
    message: Any = None
    personality: str = DEFAULT_PERSONALITY
    language: str = DEFAULT_LANGUAGE


class TextTurnResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    tts_audio_url: Optional[str] = Field(default=None, alias="ttsAudioUrl")


class VoiceTurnResponse(TextTurnResponse):
    transcription: str = ""


class ProfileSettings(BaseModel):
    personality: str = DEFAULT_PERSONALITY
    language: str = DEFAULT_LANGUAGE


class UserProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    name: Optional[str] = None
    profile_picture: Optional[str] = Field(default=None, alias="profilePicture")
    settings: ProfileSettings = ProfileSettings()
    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=utc_now_iso, alias="updatedAt")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class ServiceFlags(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    google_cloud: bool = Field(alias="googleCloud")
    gemini: bool
    firebase: bool
    cloud_storage: bool = Field(alias="cloudStorage")


class HealthResponse(BaseModel):
    status: str = "OK"
    timestamp: str
    service: str
    uptime: float
    environment: str
    services: ServiceFlags
