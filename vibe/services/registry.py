"""Startup construction of every external service handle."""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..config import Settings
from ..db.base import HistoryStore, ProfileStore
from .base import Generator, Publisher, Synthesizer, Transcriber

logger = logging.getLogger(__name__)


@dataclass
class Services:
    generator: Optional[Generator] = None
    transcriber: Optional[Transcriber] = None
    synthesizer: Optional[Synthesizer] = None
    publisher: Optional[Publisher] = None
    store: Optional[Union[HistoryStore, ProfileStore]] = None


def _build_generator(settings: Settings) -> Optional[Generator]:
    if not settings.gemini_api_key:
        logger.warning("GOOGLE_GENERATIVE_AI_API_KEY is not set; replies run in demo mode")
        return None
    from .gemini_service import GeminiService
    try:
        return GeminiService(settings.gemini_api_key, settings.gemini_model)
    except Exception as e:
        logger.error("Failed to initialize Gemini AI: %s", e)
        return None


def _build_transcriber(settings: Settings) -> Optional[Transcriber]:
    try:
        if settings.speech_backend == "whisper":
            from .whisper_service import WhisperTranscriber
            return WhisperTranscriber()
        from .speech_service import GoogleSpeechTranscriber
        return GoogleSpeechTranscriber()
    except Exception as e:
        logger.error("Failed to initialize speech client (%s): %s", settings.speech_backend, e)
        return None


def _build_synthesizer(settings: Settings) -> Optional[Synthesizer]:
    if settings.tts_backend == "none":
        return None
    try:
        if settings.tts_backend == "piper":
            from .piper_service import PiperSynthesizer
            return PiperSynthesizer.from_env()
        from .tts_service import GoogleSpeechSynthesizer
        return GoogleSpeechSynthesizer()
    except Exception as e:
        logger.error("Failed to initialize TTS client (%s): %s", settings.tts_backend, e)
        return None


def _build_publisher(settings: Settings) -> Publisher:
    from .storage_service import CloudStoragePublisher, LocalAudioPublisher

    if settings.audio_store == "local":
        return LocalAudioPublisher(settings.uploads_dir, settings.public_base_url)

    client = None
    try:
        from google.cloud import storage
        client = storage.Client()
    except Exception as e:
        logger.error("Failed to initialize Google Cloud Storage client: %s", e)
    return CloudStoragePublisher(settings.storage_bucket, client)


def _build_store(settings: Settings) -> Optional[Union[HistoryStore, ProfileStore]]:
    try:
        if settings.history_backend == "firestore":
            from ..db.firestore_store import FirestoreStore, firestore_client
            return FirestoreStore(firestore_client(settings.firebase_project_id, settings.google_credentials))

        from ..db.crud import SqlStore
        from ..db.database import init_db, make_engine, make_session_factory
        engine = make_engine(settings.database_url)
        init_db(engine)
        return SqlStore(make_session_factory(engine))
    except Exception as e:
        logger.error("Failed to initialize %s history store: %s", settings.history_backend, e)
        return None


def build_services(settings: Settings) -> Services:
    services = Services(
        generator=_build_generator(settings),
        transcriber=_build_transcriber(settings),
        synthesizer=_build_synthesizer(settings),
        publisher=_build_publisher(settings),
        store=_build_store(settings),
    )
    logger.info(
        "Services: generator=%s transcriber=%s synthesizer=%s publisher=%s store=%s",
        getattr(services.generator, "name", None),
        getattr(services.transcriber, "name", None),
        getattr(services.synthesizer, "name", None),
        services.publisher.name if services.publisher and services.publisher.configured else None,
        type(services.store).__name__ if services.store else None,
    )
    return services
