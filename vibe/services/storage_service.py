import logging
from pathlib import Path
from typing import Optional

import anyio
from google.cloud import storage

from ..errors import StorageUnavailable
from .base import Publisher

logger = logging.getLogger(__name__)

AUDIO_PREFIX = "tts-audio"


class CloudStoragePublisher(Publisher):
    """Uploads synthesized audio to a public Cloud Storage bucket."""

    name = "gcs"

    def __init__(self, bucket_name: Optional[str], client: Optional[storage.Client] = None):
        self.bucket_name = bucket_name
        self.client = client

    @property
    def configured(self) -> bool:
        return self.client is not None and bool(self.bucket_name)

    def public_url(self, filename: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/{AUDIO_PREFIX}/{filename}"

    async def publish(self, data: bytes, filename: str, content_type: str) -> str:
        if self.client is None:
            raise StorageUnavailable("Google Cloud Storage client not initialized")
        if not self.bucket_name:
            raise StorageUnavailable("GOOGLE_CLOUD_STORAGE_BUCKET environment variable not set")

        def _upload():
            blob = self.client.bucket(self.bucket_name).blob(f"{AUDIO_PREFIX}/{filename}")
            blob.cache_control = "public, max-age=3600"
            blob.upload_from_string(data, content_type=content_type)
            blob.make_public()

        try:
            await anyio.to_thread.run_sync(_upload)
        except Exception as e:
            raise StorageUnavailable(f"Upload of {filename} failed: {e}") from e
        return self.public_url(filename)


class LocalAudioPublisher(Publisher):
    """Writes audio into the directory mounted at /uploads."""

    name = "local"

    def __init__(self, uploads_dir: Path, public_base_url: str):
        self.uploads_dir = Path(uploads_dir)
        self.public_base_url = public_base_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return True

    async def publish(self, data: bytes, filename: str, content_type: str) -> str:
        target = anyio.Path(self.uploads_dir) / filename
        try:
            await target.parent.mkdir(parents=True, exist_ok=True)
            await target.write_bytes(data)
        except OSError as e:
            raise StorageUnavailable(f"Could not write {target}: {e}") from e
        return f"{self.public_base_url}/uploads/{filename}"
