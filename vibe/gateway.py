"""Conversation turns: transcription -> generation -> best-effort speech."""

import logging
import time
import uuid
from typing import Any, Optional

from fastapi import UploadFile

from .errors import InvalidInput, ServiceUnavailable, StorageUnavailable, classify_upstream
from .schemas import TextTurnResponse, VoiceTurnResponse
from .services.base import Generator, Publisher, SpeechOutcome, Synthesizer, Transcriber
from .services.gemini_service import SYSTEM_PROMPT
from .uploads import staged_audio, validate_audio

logger = logging.getLogger(__name__)

CLARIFICATION_REPLY = "I couldn't hear what you said. Could you please try again?"
TEXT_DEMO_REPLY = 'You said: "{}". I\'m currently in demo mode, but I\'m here to chat!'
VOICE_DEMO_REPLY = 'I heard you say: "{}". I\'m currently in demo mode, but I\'m here to chat!'


class ConversationGateway:
    def __init__(
        self,
        generator: Optional[Generator] = None,
        transcriber: Optional[Transcriber] = None,
        synthesizer: Optional[Synthesizer] = None,
        publisher: Optional[Publisher] = None,
        system_prompt: str = SYSTEM_PROMPT,
        max_message_length: int = 1000,
        max_upload_bytes: int = 10 * 1024 * 1024,
        upload_tmp_dir: Optional[str] = None,
    ):
        self.generator = generator
        self.transcriber = transcriber
        self.synthesizer = synthesizer
        self.publisher = publisher
        self.system_prompt = system_prompt
        self.max_message_length = max_message_length
        self.max_upload_bytes = max_upload_bytes
        self.upload_tmp_dir = upload_tmp_dir

    def validate_message(self, message: Any) -> str:
        if not isinstance(message, str) or not message.strip():
            raise InvalidInput("Please provide a valid message.", title="Invalid message")
        if len(message) > self.max_message_length:
            raise InvalidInput(
                f"Message must be less than {self.max_message_length} characters.",
                title="Message too long",
            )
        return message

    async def text_turn(self, message: Any) -> TextTurnResponse:
        message = self.validate_message(message)
        reply = await self._generate(message, TEXT_DEMO_REPLY)
        outcome = await self.speak(reply)
        return TextTurnResponse(response=reply, tts_audio_url=outcome.url)

    async def voice_turn(self, upload: Optional[UploadFile]) -> VoiceTurnResponse:
        validate_audio(upload, self.max_upload_bytes)
        if self.transcriber is None:
            raise ServiceUnavailable(
                "Voice features are temporarily unavailable. Please try text input.",
                title="Speech recognition service unavailable",
            )

        async with staged_audio(upload, self.max_upload_bytes, self.upload_tmp_dir) as audio_path:
            try:
                transcription = await self.transcriber.transcribe(audio_path)
            except Exception as e:
                raise classify_upstream(e, "Speech recognition failed", "Speech-to-Text") from e

        if not transcription.strip():
            return VoiceTurnResponse(transcription="", response=CLARIFICATION_REPLY, tts_audio_url=None)

        reply = await self._generate(transcription, VOICE_DEMO_REPLY)
        outcome = await self.speak(reply)
        return VoiceTurnResponse(transcription=transcription, response=reply, tts_audio_url=outcome.url)

    async def _generate(self, user_text: str, demo_template: str) -> str:
        if self.generator is None:
            return demo_template.format(user_text)
        try:
            return await self.generator.generate_reply(self.system_prompt, user_text)
        except Exception as e:
            raise classify_upstream(e, "AI response generation failed", "AI Generation") from e

    async def speak(self, text: str) -> SpeechOutcome:
        """Synthesize and publish `text`. Never raises; failures yield a null URL."""
        if self.synthesizer is None:
            return SpeechOutcome()

        try:
            audio = await self.synthesizer.synthesize(text)
        except Exception as e:
            logger.warning("TTS failed, continuing without audio: %s", e)
            return SpeechOutcome(error=e)

        if self.publisher is None:
            return SpeechOutcome(error=StorageUnavailable("No audio publisher configured"))

        filename = f"tts_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.{self.synthesizer.extension}"
        try:
            url = await self.publisher.publish(audio, filename, self.synthesizer.content_type)
        except StorageUnavailable as e:
            logger.warning("Cloud storage failed, continuing without audio: %s", e)
            return SpeechOutcome(error=e)
        return SpeechOutcome(url=url)
