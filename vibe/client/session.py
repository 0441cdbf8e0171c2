"""Chat session state: transcript, recording lifecycle, sends and history paging.

Recording moves idle -> recording -> recorded -> sending -> idle. History
loading is tracked separately (not_loaded -> loading -> loaded). Failed sends
leave an error bot message in the transcript and can be re-issued with
retry().
"""

import logging
import socket
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Union

import anyio

from ..db.base import PAGE_SIZE, HistoryStore
from ..schemas import Message, MessageType, ProfileSettings, utc_now_iso
from .api import GatewayClient
from .errors import Notifier, OfflineError, handle_error
from .recorder import CaptureSource, Recorder
from .retry import retry_with_backoff

logger = logging.getLogger(__name__)

WELCOME_TEXT = "Hello! I am VIBE, your AI companion. How can I help you today?"
TEXT_FAILED_TEXT = "Sorry, I'm having trouble responding right now. Please try again."
VOICE_FAILED_TEXT = "Sorry, I couldn't process your voice message. Please try again."
NO_REPLY_TEXT = "VIBE could not process your message."
NO_VOICE_REPLY_TEXT = "VIBE could not process your voice message."
VOICE_PLACEHOLDER = "[Voice message]"


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    RECORDED = "recorded"
    SENDING = "sending"


class HistoryState(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"


class SessionStateError(RuntimeError):
    pass


@dataclass
class PendingSend:
    kind: str  # "text" | "voice"
    text: Optional[str] = None
    audio: Optional[bytes] = None
    filename: str = "recording.webm"
    content_type: str = "audio/webm"


def _reachable(host: str, port: int, timeout: float) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


async def check_online(host: str = "8.8.8.8", port: int = 53, timeout: float = 2.0) -> bool:
    return await anyio.to_thread.run_sync(_reachable, host, port, timeout)


class ChatSession:
    def __init__(
        self,
        api: GatewayClient,
        user_id: Optional[str] = None,
        store: Optional[HistoryStore] = None,
        capture_factory: Optional[Callable[[], CaptureSource]] = None,
        is_online: Callable[[], Awaitable[bool]] = check_online,
        notify: Optional[Notifier] = None,
        player: Optional[Callable[[Union[str, bytes]], None]] = None,
        settings: Optional[ProfileSettings] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
        page_size: int = PAGE_SIZE,
    ):
        self.api = api
        self.user_id = user_id
        self.store = store
        self.capture_factory = capture_factory
        self.is_online = is_online
        self.notify = notify
        self.player = player
        self.settings = settings or ProfileSettings()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.sleep = sleep
        self.page_size = page_size

        self.state = RecordingState.IDLE
        self.history_state = HistoryState.NOT_LOADED
        self.messages: List[Message] = [self._welcome()]
        self.cursor: Optional[str] = None
        self.has_more = False
        self.recorded_audio: Optional[bytes] = None
        self._recorded_format = ("recording.webm", "audio/webm")
        self.pending: Optional[PendingSend] = None
        self._recorder: Optional[Recorder] = None
        self._last_timestamp = ""

    # Messages

    def _timestamp(self) -> str:
        # Display order must never go backwards, even if the clock does
        ts = max(utc_now_iso(), self._last_timestamp)
        self._last_timestamp = ts
        return ts

    def _new_message(self, kind: MessageType, content: str, **extra) -> Message:
        return Message(id=uuid.uuid4().hex, type=kind, content=content, timestamp=self._timestamp(), **extra)

    def _welcome(self) -> Message:
        return Message(id="welcome", type=MessageType.bot, content=WELCOME_TEXT, timestamp=utc_now_iso())

    async def _append(self, message: Message) -> Message:
        self.messages.append(message)
        if self.store is not None and self.user_id:
            try:
                await self.store.add_message(self.user_id, message)
            except Exception as e:
                # Persistence never blocks the conversation
                handle_error(e, "Saving message")
        return message

    # History

    async def load_history(self) -> None:
        if self.store is None or not self.user_id:
            self.messages = [self._welcome()]
            self.history_state = HistoryState.LOADED
            return

        self.history_state = HistoryState.LOADING
        try:
            page = await self.store.fetch_page(self.user_id, limit=self.page_size)
        except Exception as e:
            handle_error(e, "Loading chat history", self.notify)
            self.history_state = HistoryState.LOADED
            return

        if page.messages:
            self.messages = list(reversed(page.messages))
            self._last_timestamp = max(m.timestamp for m in page.messages)
            self.cursor = page.cursor
            self.has_more = len(page.messages) == self.page_size
        else:
            self.messages = [self._welcome()]
            self.has_more = False
        self.history_state = HistoryState.LOADED

    async def load_older(self) -> int:
        """Prepend the next page of older messages; returns how many were added."""
        if self.store is None or not self.user_id or self.cursor is None or not self.has_more:
            return 0
        if self.history_state is HistoryState.LOADING:
            return 0

        self.history_state = HistoryState.LOADING
        try:
            page = await self.store.fetch_page(self.user_id, limit=self.page_size, cursor=self.cursor)
        except Exception as e:
            handle_error(e, "Loading older messages", self.notify)
            return 0
        finally:
            self.history_state = HistoryState.LOADED

        if not page.messages:
            self.has_more = False
            return 0
        self.messages = list(reversed(page.messages)) + self.messages
        self.cursor = page.cursor
        self.has_more = len(page.messages) == self.page_size
        return len(page.messages)

    async def clear_history(self) -> None:
        if self.store is not None and self.user_id:
            try:
                await self.store.clear(self.user_id)
            except Exception as e:
                handle_error(e, "Clearing chat history", self.notify)
                return
        self.reset()
        if self.notify:
            self.notify("success", "Chat history cleared successfully")

    def reset(self) -> None:
        """Back to the signed-out welcome state."""
        if self._recorder is not None:
            self._recorder.abort()
            self._recorder = None
        self.messages = [self._welcome()]
        self.cursor = None
        self.has_more = False
        self.recorded_audio = None
        self.pending = None
        self.state = RecordingState.IDLE
        self.history_state = HistoryState.NOT_LOADED

    # Recording

    async def _require_online(self, context: str) -> None:
        if not await self.is_online():
            error = OfflineError()
            handle_error(error, context, self.notify)
            raise error

    async def start_recording(self) -> None:
        if self.state not in (RecordingState.IDLE, RecordingState.RECORDED):
            raise SessionStateError(f"Cannot start recording while {self.state.value}")
        if self.capture_factory is None:
            raise SessionStateError("No capture source configured")
        await self._require_online("Voice recording")

        self.recorded_audio = None
        recorder = Recorder(self.capture_factory())
        try:
            recorder.start()
        except Exception as e:
            handle_error(e, "Voice recording", self.notify)
            self.state = RecordingState.IDLE
            raise
        self._recorder = recorder
        self.state = RecordingState.RECORDING

    def stop_recording(self) -> bytes:
        if self.state is not RecordingState.RECORDING or self._recorder is None:
            raise SessionStateError(f"Cannot stop recording while {self.state.value}")

        recorder, self._recorder = self._recorder, None
        try:
            audio = recorder.stop()
        except Exception as e:
            handle_error(e, "Voice recording", self.notify)
            self.state = RecordingState.IDLE
            raise
        self.recorded_audio = audio
        self._recorded_format = (recorder.source.filename, recorder.source.content_type)
        self.state = RecordingState.RECORDED
        return audio

    def play_recording(self) -> None:
        if self.state is not RecordingState.RECORDED or self.recorded_audio is None:
            raise SessionStateError("Nothing recorded to play")
        self._play(self.recorded_audio)

    def delete_recording(self) -> None:
        if self.state is not RecordingState.RECORDED:
            raise SessionStateError(f"Cannot delete a recording while {self.state.value}")
        self.recorded_audio = None
        self.state = RecordingState.IDLE

    def _play(self, source: Union[str, bytes]) -> None:
        if self.player is None:
            return
        try:
            self.player(source)
        except Exception as e:
            handle_error(e, "Audio playback", self.notify)

    # Sending

    async def send_text(self, text: str) -> Optional[Message]:
        """Send a text turn; returns the bot reply (an error message on failure)."""
        if not text or not text.strip():
            return None
        if self.state in (RecordingState.SENDING, RecordingState.RECORDING):
            raise SessionStateError(f"Cannot send while {self.state.value}")
        await self._require_online("Sending message")

        await self._append(self._new_message(MessageType.user, text))
        return await self._deliver(PendingSend(kind="text", text=text))

    async def send_voice(self) -> Optional[Message]:
        if self.state is not RecordingState.RECORDED or self.recorded_audio is None:
            raise SessionStateError(f"Cannot send a voice message while {self.state.value}")
        await self._require_online("Sending voice message")

        filename, content_type = self._recorded_format
        pending = PendingSend(kind="voice", audio=self.recorded_audio, filename=filename, content_type=content_type)
        reply = await self._deliver(pending)
        self.recorded_audio = None
        return reply

    async def retry(self) -> Optional[Message]:
        """Re-issue the last failed send, text or voice."""
        if self.pending is None:
            return None
        if self.state in (RecordingState.SENDING, RecordingState.RECORDING):
            raise SessionStateError(f"Cannot retry while {self.state.value}")
        await self._require_online("Retrying message")
        return await self._deliver(self.pending)

    async def _deliver(self, pending: PendingSend) -> Message:
        previous = self.state
        self.state = RecordingState.SENDING
        try:
            data = await retry_with_backoff(
                lambda: self._request(pending),
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                sleep=self.sleep,
            )
        except Exception as e:
            handle_error(e, "Sending voice message" if pending.kind == "voice" else "Sending message", self.notify)
            self.pending = pending
            self.state = RecordingState.IDLE if pending.kind == "voice" else previous
            failed = VOICE_FAILED_TEXT if pending.kind == "voice" else TEXT_FAILED_TEXT
            return await self._append(self._new_message(MessageType.bot, failed, is_error=True))

        self.pending = None
        if pending.kind == "voice":
            self.state = RecordingState.IDLE
            await self._append(self._new_message(MessageType.user, data.get("transcription") or VOICE_PLACEHOLDER))
            fallback = NO_VOICE_REPLY_TEXT
        else:
            self.state = previous
            fallback = NO_REPLY_TEXT

        audio_url = data.get("ttsAudioUrl") or None
        reply = await self._append(
            self._new_message(MessageType.bot, data.get("response") or fallback, tts_audio_url=audio_url)
        )
        if audio_url:
            self._play(audio_url)
        return reply

    async def _request(self, pending: PendingSend) -> dict:
        if pending.kind == "voice":
            return await self.api.send_voice(
                pending.audio,
                filename=pending.filename,
                content_type=pending.content_type,
                personality=self.settings.personality,
                language=self.settings.language,
            )
        return await self.api.send_text(
            pending.text,
            personality=self.settings.personality,
            language=self.settings.language,
        )
