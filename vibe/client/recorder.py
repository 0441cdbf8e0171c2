"""Microphone capture: acquire the device, collect chunks, always release."""

import io
import logging
import threading
import wave
from abc import ABC, abstractmethod
from typing import List, Optional

from .errors import MicrophoneError

logger = logging.getLogger(__name__)

# Audio constants
CHANNELS = 1
RATE = 16000
CHUNK = 1024


class CaptureSource(ABC):
    content_type = "audio/wav"
    filename = "recording.wav"

    @abstractmethod
    def start(self) -> None:
        """Acquire the input device."""

    @abstractmethod
    def read(self) -> bytes:
        """Block for the next chunk; b"" when nothing is available."""

    @abstractmethod
    def stop(self) -> None:
        """Release the input device. Safe to call more than once."""

    def finalize(self, raw: bytes) -> bytes:
        """Wrap the concatenated chunks into the upload format."""
        return raw


class PyAudioCapture(CaptureSource):
    """16 kHz mono 16-bit PCM from the default input device, uploaded as WAV."""

    def __init__(self, rate: int = RATE, chunk: int = CHUNK):
        self.rate = rate
        self.chunk = chunk
        self._pa = None
        self._stream = None
        self._sample_width = 2

    def start(self) -> None:
        import pyaudio

        self._pa = pyaudio.PyAudio()
        try:
            self._sample_width = self._pa.get_sample_size(pyaudio.paInt16)
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=CHANNELS,
                rate=self.rate,
                input=True,
                frames_per_buffer=self.chunk,
            )
        except OSError as e:
            self.stop()
            raise MicrophoneError(f"Microphone unavailable: {e}") from e

    def read(self) -> bytes:
        return self._stream.read(self.chunk, exception_on_overflow=False)

    def stop(self) -> None:
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None

    def finalize(self, raw: bytes) -> bytes:
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(CHANNELS)
            wf.setsampwidth(self._sample_width)
            wf.setframerate(self.rate)
            wf.writeframes(raw)
        return buf.getvalue()


class Recorder:
    """Runs one capture on a background thread between start() and stop()."""

    def __init__(self, source: CaptureSource):
        self.source = source
        self._chunks: List[bytes] = []
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        try:
            self.source.start()
        except MicrophoneError:
            raise
        except Exception as e:
            self.source.stop()
            raise MicrophoneError(f"Microphone unavailable: {e}") from e
        self._thread = threading.Thread(target=self._capture, name="vibe-recorder", daemon=True)
        self._thread.start()

    def _capture(self) -> None:
        try:
            while not self._stopping.is_set():
                chunk = self.source.read()
                if chunk:
                    self._chunks.append(chunk)
                else:
                    self._stopping.wait(0.01)
        except Exception as e:
            logger.error("Recording failed: %s", e)
            self.error = e
            self.source.stop()

    def stop(self) -> bytes:
        """Stop capturing, release the device and return the recording."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join()
        self.source.stop()
        if self.error is not None:
            raise MicrophoneError("Recording failed") from self.error
        return self.source.finalize(b"".join(self._chunks))

    def abort(self) -> None:
        self._stopping.set()
        if self._thread is not None:
            self._thread.join()
        self.source.stop()
