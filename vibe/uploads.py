"""Staging of uploaded audio: validate, write to a temp path, always delete."""

import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import UploadFile

from .errors import InvalidInput

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _too_large(max_bytes: int) -> InvalidInput:
    mb = max_bytes // (1024 * 1024)
    return InvalidInput(f"Audio file must be less than {mb}MB.", title="File too large")


def validate_audio(upload: Optional[UploadFile], max_bytes: int) -> UploadFile:
    if upload is None or not upload.filename:
        raise InvalidInput("Please record an audio message before sending.", title="No audio file uploaded")
    if not (upload.content_type or "").startswith("audio/"):
        raise InvalidInput("Only audio files are allowed.", title="File Upload Error")
    if upload.size is not None and upload.size > max_bytes:
        raise _too_large(max_bytes)
    return upload


@asynccontextmanager
async def staged_audio(
    upload: Optional[UploadFile],
    max_bytes: int,
    tmp_dir: Optional[str] = None,
) -> AsyncIterator[Path]:
    """Yield a temp path holding the upload; the file is removed on exit."""
    upload = validate_audio(upload, max_bytes)
    suffix = os.path.splitext(upload.filename or "audio.webm")[1] or ".webm"

    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix, dir=tmp_dir) as tmp:
        tmp_path = Path(tmp.name)
    try:
        written = 0
        with open(tmp_path, "wb") as out:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise _too_large(max_bytes)
                out.write(chunk)
        yield tmp_path
    finally:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to clean up uploaded file %s: %s", tmp_path, e)
