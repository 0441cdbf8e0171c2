from pathlib import Path
from typing import Optional

import anyio
from google.cloud import speech

from .base import Transcriber


class GoogleSpeechTranscriber(Transcriber):
    """Cloud Speech-to-Text over browser-recorded WebM/Opus audio."""

    name = "google"

    def __init__(
        self,
        client: Optional[speech.SpeechClient] = None,
        language_code: str = "en-US",
        sample_rate_hertz: int = 48000,
    ):
        self.client = client or speech.SpeechClient()
        self.config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.WEBM_OPUS,
            sample_rate_hertz=sample_rate_hertz,
            language_code=language_code,
            enable_automatic_punctuation=True,
        )
        # WAV carries encoding and rate in its header
        self.wav_config = speech.RecognitionConfig(
            language_code=language_code,
            enable_automatic_punctuation=True,
        )

    async def transcribe(self, audio_path: Path) -> str:
        content = await anyio.Path(audio_path).read_bytes()
        audio = speech.RecognitionAudio(content=content)

        config = self.wav_config if audio_path.suffix.lower() == ".wav" else self.config

        def _call():
            return self.client.recognize(config=config, audio=audio)

        response = await anyio.to_thread.run_sync(_call)
        parts = [r.alternatives[0].transcript for r in response.results if r.alternatives]
        return " ".join(parts).strip()
