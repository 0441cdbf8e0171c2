from typing import Optional

import anyio
from google.cloud import texttospeech

from .base import Synthesizer


class GoogleSpeechSynthesizer(Synthesizer):
    name = "google"
    content_type = "audio/mpeg"
    extension = "mp3"

    def __init__(
        self,
        client: Optional[texttospeech.TextToSpeechClient] = None,
        language_code: str = "en-IN",
        voice_name: str = "en-IN-Wavenet-E",
    ):
        self.client = client or texttospeech.TextToSpeechClient()
        self.voice = texttospeech.VoiceSelectionParams(
            language_code=language_code,
            name=voice_name,
            ssml_gender=texttospeech.SsmlVoiceGender.FEMALE,
        )
        self.audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.MP3,
        )

    async def synthesize(self, text: str) -> bytes:
        synthesis_input = texttospeech.SynthesisInput(text=text)

        def _call():
            return self.client.synthesize_speech(
                input=synthesis_input, voice=self.voice, audio_config=self.audio_config
            )

        response = await anyio.to_thread.run_sync(_call)
        return response.audio_content
