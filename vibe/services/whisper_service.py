import logging
import os
from pathlib import Path

import anyio

from .base import Transcriber

logger = logging.getLogger(__name__)

DEFAULT_MODEL = os.getenv("FASTER_WHISPER_MODEL", "tiny")  # e.g., tiny, tiny.en, small
DEVICE = os.getenv("FASTER_WHISPER_DEVICE", "cpu")         # cpu or cuda (if CUDA build is available)
COMPUTE = os.getenv("FASTER_WHISPER_COMPUTE", "int8")      # int8 (cpu), float16 (cuda), etc.


class WhisperTranscriber(Transcriber):
    """Local transcription with faster-whisper; the model loads on first use."""

    name = "whisper"

    def __init__(self, model_name: str = DEFAULT_MODEL, device: str = DEVICE, compute_type: str = COMPUTE):
        self.model_name = model_name
        self.device = device
        self.compute_type = compute_type
        self._model = None

    def _get_model(self):
        if self._model is None:
            # Heavy import, deferred until the first transcription
            from faster_whisper import WhisperModel
            self._model = WhisperModel(self.model_name, device=self.device, compute_type=self.compute_type)
        return self._model

    def warmup(self) -> None:
        """Optionally preload the model to avoid first-request latency."""
        try:
            self._get_model()
        except Exception as e:
            # Fail-soft: do not crash app on warmup failure
            logger.warning("Whisper warmup failed: %s", e)

    async def transcribe(self, audio_path: Path) -> str:
        def _call() -> str:
            model = self._get_model()
            # Favor speed: small beam, no best-of search
            segments, _info = model.transcribe(str(audio_path), beam_size=1, best_of=1)
            return " ".join(seg.text for seg in segments).strip()

        return await anyio.to_thread.run_sync(_call)
