"""
LectureAI Backend - Upload Staging
====================================

What:  Holds a client upload on local disk for exactly as long as one
       request needs it.
How:   Streams the multipart file into a uniquely named temp file with
       aiofiles, yields a StagedFile, and deletes the temp file when the
       `async with` block exits, on success and on every failure path.
Who:   POST /upload, before relaying the bytes to object storage.

Usage:
    async with staging.stage(upload) as staged:
        await storage.upload_file(staged.path, staged.original_name)
"""

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Union

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from lectureai.config import Settings, settings as default_settings
from lectureai.exceptions import ValidationError
from lectureai.schemas.api import StagedFile

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


class UploadStaging:
    """
    Temp-file lifecycle for uploads.

    Temp names are random (uuid4 + original extension), so concurrent
    uploads of the same file name never collide and no client input
    reaches the local path.
    """

    def __init__(self, settings: Settings = default_settings):
        self.upload_dir = Path(settings.upload_dir).resolve()
        self.max_size = settings.max_upload_size

    async def prepare(self) -> None:
        """Create the staging directory. Called at startup and before each write."""
        await aiofiles.os.makedirs(self.upload_dir, exist_ok=True)

    def _temp_path(self, original_name: str) -> Path:
        return self.upload_dir / f"{uuid.uuid4().hex}{Path(original_name).suffix.lower()}"

    async def _write(self, upload: UploadFile, path: Path) -> int:
        """Copy the upload to `path` chunk by chunk, enforcing the size limit."""
        max_mb = self.max_size / (1024 * 1024)
        size = 0
        async with aiofiles.open(path, "wb") as out:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_size:
                    raise ValidationError(
                        message=f"File size exceeds maximum of {max_mb:.0f}MB.",
                        field="file",
                        context={"max_size_mb": max_mb},
                    )
                await out.write(chunk)
        return size

    @asynccontextmanager
    async def stage(self, upload: Optional[UploadFile]) -> AsyncIterator[StagedFile]:
        """
        Stage an upload for the duration of the `async with` block.

        Raises:
            ValidationError: no file, an empty file, or one over MAX_UPLOAD_SIZE.
        """
        if upload is None or not upload.filename:
            raise ValidationError(message="No file uploaded", field="file")

        original_name = upload.filename
        await self.prepare()
        path = self._temp_path(original_name)
        try:
            size = await self._write(upload, path)
            if size == 0:
                raise ValidationError(
                    message="Uploaded file is empty",
                    field="file",
                    context={"file_name": original_name},
                )
            logger.info("Upload staged: %s (%d bytes)", original_name, size)
            yield StagedFile(path=str(path), original_name=original_name, size=size)
        finally:
            await self.cleanup_file(path)

    async def cleanup_file(self, file_path: Union[str, Path]) -> None:
        """
        Remove a staged file if it is still there.

        Errors are logged, not raised: the request outcome is already decided
        by the time cleanup runs.
        """
        try:
            if await aiofiles.os.path.exists(file_path):
                await aiofiles.os.remove(file_path)
                logger.debug("Cleaned up staged file: %s", Path(file_path).name)
        except OSError as e:
            logger.warning("Failed to clean up staged file %s: %s", file_path, str(e))
