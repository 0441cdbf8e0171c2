import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env from project root BEFORE any setting is read
PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=PROJECT_ROOT / ".env", override=False)

# The original key-file variable is an alias for the standard ADC one
if os.getenv("GOOGLE_CLOUD_KEY_FILE") and not os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = os.environ["GOOGLE_CLOUD_KEY_FILE"]


def _env_int(name: str, fallback: int) -> int:
    try:
        return int(os.getenv(name, str(fallback)))
    except (TypeError, ValueError):
        return fallback


class Settings(BaseModel):
    app_name: str = "VIBE AI Companion API"
    app_version: str = "1.0.0"
    environment: str = "development"

    host: str = "0.0.0.0"
    port: int = 5000
    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    # Language model
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"

    # Google Cloud
    google_credentials: Optional[str] = None
    storage_bucket: Optional[str] = None
    firebase_project_id: Optional[str] = None

    # Backend selection
    speech_backend: str = "google"   # google | whisper
    tts_backend: str = "google"      # google | piper | none
    audio_store: str = "gcs"         # gcs | local
    history_backend: str = "sql"     # firestore | sql

    database_url: str = f"sqlite:///{(PROJECT_ROOT / 'database' / 'app.db').as_posix()}"
    uploads_dir: Path = PROJECT_ROOT / "uploads"
    public_base_url: str = "http://localhost:5000"

    # Limits
    max_upload_bytes: int = 10 * 1024 * 1024
    max_message_length: int = 1000
    rate_limit: int = 50
    general_rate_limit: int = 100
    rate_window: int = 15 * 60
    trust_proxy: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment, read at call time."""
        defaults = cls()
        firebase_project_id = os.getenv("FIREBASE_PROJECT_ID") or None
        # Firestore holds history whenever a Firebase project is configured
        history_default = "firestore" if firebase_project_id else defaults.history_backend
        return cls(
            environment=os.getenv("VIBE_ENV", defaults.environment),
            host=os.getenv("HOST", defaults.host),
            port=_env_int("PORT", defaults.port),
            frontend_url=os.getenv("FRONTEND_URL", defaults.frontend_url),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
            gemini_api_key=os.getenv("GOOGLE_GENERATIVE_AI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", defaults.gemini_model),
            google_credentials=os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or None,
            storage_bucket=os.getenv("GOOGLE_CLOUD_STORAGE_BUCKET") or None,
            firebase_project_id=firebase_project_id,
            speech_backend=os.getenv("SPEECH_BACKEND", defaults.speech_backend).lower(),
            tts_backend=os.getenv("TTS_BACKEND", defaults.tts_backend).lower(),
            audio_store=os.getenv("AUDIO_STORE", defaults.audio_store).lower(),
            history_backend=os.getenv("HISTORY_BACKEND", history_default).lower(),
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            uploads_dir=Path(os.getenv("UPLOADS_DIR", str(defaults.uploads_dir))),
            public_base_url=os.getenv("PUBLIC_BASE_URL", defaults.public_base_url).rstrip("/"),
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", defaults.max_upload_bytes),
            max_message_length=_env_int("MAX_MESSAGE_LENGTH", defaults.max_message_length),
            rate_limit=_env_int("RATE_LIMIT", defaults.rate_limit),
            general_rate_limit=_env_int("GENERAL_RATE_LIMIT", defaults.general_rate_limit),
            rate_window=_env_int("RATE_WINDOW", defaults.rate_window),
            trust_proxy=os.getenv("TRUST_PROXY", "").lower() in ("1", "true", "yes"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
