"""
LocalDiskAdapter — fsspec-based local fallback for development.

Files land in a flat uploads directory:

    uploads/
    └── {unix-millis}-{filename}

Results are not content-addressed: the CID is a placeholder
("local-{unix-millis}") and the URL is a path under /uploads/ that the
HTTP layer serves statically. Payloads are written to a hidden
".{name}.part" file first and renamed into place, so a failed write
never leaves a servable partial file.
"""

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import Tuple

import fsspec

from ..models import ProviderKind, UploadRequest, UploadResult, local_file_name, unix_millis
from .base import ProviderAdapter

logger = logging.getLogger(__name__)


class LocalDiskAdapter(ProviderAdapter):
    """
    Local filesystem fallback.

    Never used in production; the resolver decides eligibility.
    No directory variant.
    """

    kind = ProviderKind.LOCAL

    def __init__(self, uploads_dir: str = "uploads", url_prefix: str = "/uploads"):
        """
        Args:
            uploads_dir: Directory for stored files (created on first write)
            url_prefix: URL path the directory is served under
        """
        self.uploads_dir = Path(uploads_dir).resolve()
        self.url_prefix = url_prefix.rstrip("/")
        self.fs = fsspec.filesystem("file")
        self._names_lock = threading.Lock()

    def _ensure_directory(self) -> None:
        """Create the uploads directory; safe under concurrent creation."""
        self.uploads_dir.mkdir(parents=True, exist_ok=True)

    def _reserve(self, filename: str) -> Tuple[int, Path, Path]:
        """
        Reserve a unique final name and create its temp file.

        Writer threads may share a millisecond; both the final and the
        temp name count as taken.
        """
        with self._names_lock:
            millis = unix_millis()
            while True:
                path = self.uploads_dir / local_file_name(filename, millis)
                temp_path = path.with_name(f".{path.name}.part")
                if not (self.fs.exists(str(path)) or self.fs.exists(str(temp_path))):
                    break
                millis += 1
            self.fs.touch(str(temp_path))
        return millis, path, temp_path

    def _write(self, request: UploadRequest) -> UploadResult:
        self._ensure_directory()

        # Strip any client-supplied directories
        filename = Path(request.filename).name or "file"
        millis, path, temp_path = self._reserve(filename)

        # Atomic placement: temp and final share uploads_dir
        try:
            with self.fs.open(str(temp_path), "wb") as f:
                f.write(request.data)
            os.rename(temp_path, path)
        except BaseException:
            if self.fs.exists(str(temp_path)):
                self.fs.rm(str(temp_path))
            raise

        logger.debug(f"Wrote {path} ({request.size} bytes)")
        return UploadResult(
            cid=f"local-{millis}",
            url=f"{self.url_prefix}/{path.name}",
            size=request.size,
            name=request.filename,
            type=request.content_type,
            provider_used=self.kind,
        )

    async def store(self, request: UploadRequest) -> UploadResult:
        logger.info("Using local file system fallback...")
        try:
            result = await asyncio.to_thread(self._write, request)
        except OSError as e:
            raise self.error("Local file system upload failed", e) from e

        logger.info(f"Local file system upload successful: {result.url}")
        return result
