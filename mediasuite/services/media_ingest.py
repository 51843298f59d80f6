"""Saves request media to local files.

A media reference can be an uploaded file, a ``data:`` URI, a bare base64
payload, an ``http(s)`` URL, an ``/outputs/<name>`` reference to a previous
result, or a path already inside the upload directory.

Files written for one request are tracked by an ``IngestBatch`` so a
rejected request leaves nothing behind and a queued job can own them.
"""

import base64
import binascii
import logging
import mimetypes
import os
import re
import uuid
from pathlib import Path
from urllib.parse import urlparse

import httpx
from fastapi import UploadFile

from mediasuite.config import get_settings
from mediasuite.exceptions import MediaIngestError

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?;base64,(?P<data>.*)$", re.DOTALL)
_UNSAFE_CHARS_RE = re.compile(r"[^a-z0-9.]", re.IGNORECASE)
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=\s]+$")
CHUNK_SIZE = 1024 * 1024


def safe_filename(name: str) -> str:
    """Lowercase and replace anything but [a-z0-9.] with underscores."""
    cleaned = _UNSAFE_CHARS_RE.sub("_", Path(name).name).lower().lstrip(".")
    return cleaned or "media"


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


class MediaIngestService:
    """Local file storage for request media."""

    def __init__(self, upload_dir: str | None = None, output_dir: str | None = None) -> None:
        settings = get_settings()
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.output_dir = Path(output_dir or settings.output_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.max_bytes = settings.max_upload_size_mb * 1024 * 1024
        self.download_timeout = settings.download_timeout_s

    def _new_path(self, prefix: str, filename: str) -> Path:
        return self.upload_dir / f"{prefix}_{uuid.uuid4().hex[:12]}_{safe_filename(filename)}"

    async def save_upload(self, upload: UploadFile, prefix: str = "up") -> Path:
        """Stream an uploaded file to disk, enforcing the size limit."""
        path = self._new_path(prefix, upload.filename or "upload")
        written = 0
        with open(path, "wb") as f:
            while chunk := await upload.read(CHUNK_SIZE):
                written += len(chunk)
                if written > self.max_bytes:
                    f.close()
                    path.unlink(missing_ok=True)
                    raise MediaIngestError(f"Upload {upload.filename} exceeds the size limit")
                f.write(chunk)
        if written == 0:
            path.unlink(missing_ok=True)
            raise MediaIngestError(f"Upload {upload.filename} is empty")
        logger.info(f"[INGEST] Saved upload {upload.filename} -> {path.name} ({written} bytes)")
        return path

    def save_base64(self, payload: str, prefix: str = "b64", mime: str | None = None) -> Path:
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MediaIngestError("Invalid base64 media payload") from e
        if not data:
            raise MediaIngestError("Empty base64 media payload")
        if len(data) > self.max_bytes:
            raise MediaIngestError("Inline media exceeds the size limit")

        ext = (mimetypes.guess_extension(mime) if mime else None) or ".bin"
        path = self._new_path(prefix, f"media{ext}")
        path.write_bytes(data)
        logger.info(f"[INGEST] Saved inline media -> {path.name} ({len(data)} bytes)")
        return path

    async def download(self, url: str, prefix: str = "dl") -> Path:
        """Fetch a remote file with httpx, streaming it to disk."""
        name = Path(urlparse(url).path).name or "remote"
        path = self._new_path(prefix, name)
        written = 0
        try:
            async with httpx.AsyncClient(timeout=self.download_timeout, follow_redirects=True) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(path, "wb") as f:
                        async for chunk in response.aiter_bytes(CHUNK_SIZE):
                            written += len(chunk)
                            if written > self.max_bytes:
                                raise MediaIngestError(f"Remote media exceeds the size limit: {url}")
                            f.write(chunk)
        except httpx.TimeoutException as e:
            path.unlink(missing_ok=True)
            raise MediaIngestError(f"Timed out downloading {url}") from e
        except httpx.HTTPError as e:
            path.unlink(missing_ok=True)
            raise MediaIngestError(f"Could not download {url}: {e}") from e
        except MediaIngestError:
            path.unlink(missing_ok=True)
            raise

        logger.info(f"[INGEST] Downloaded {url} -> {path.name} ({written} bytes)")
        return path

    async def resolve_reference(self, reference: str | None, prefix: str = "ref") -> Path | None:
        """Turn any supported media reference into a local path.

        Returns None for an empty reference.

        Raises:
            MediaIngestError: the reference cannot be decoded, fetched or found
        """
        resolved = await self._resolve(reference, prefix)
        return resolved[0] if resolved else None

    async def _resolve(self, reference: str | None, prefix: str) -> tuple[Path, bool] | None:
        """(path, created) where ``created`` marks a file written by this call."""
        if not reference or not reference.strip():
            return None
        reference = reference.strip()

        match = _DATA_URI_RE.match(reference)
        if match:
            return self.save_base64(match.group("data"), prefix, match.group("mime")), True

        scheme = urlparse(reference).scheme.lower()
        if scheme in ("http", "https"):
            return await self.download(reference, prefix), True

        if reference.startswith("/outputs/"):
            candidate = self.output_dir / Path(reference).name
            if candidate.is_file():
                return candidate, False
            raise MediaIngestError(f"Output not found: {reference}")

        candidate = Path(reference)
        if os.path.isfile(reference):
            if _is_within(candidate, self.upload_dir) or _is_within(candidate, self.output_dir):
                return candidate, False
            raise MediaIngestError(f"Local path outside the media directories: {reference}")

        # Anything outside the base64 alphabet is a path or name that does not exist
        if not _BASE64_RE.match(reference):
            raise MediaIngestError(f"Media reference not found: {reference[:200]}")
        return self.save_base64(reference, prefix), True

    def batch(self) -> "IngestBatch":
        return IngestBatch(self)


class IngestBatch:
    """Files ingested for one request.

    Only files this batch wrote are tracked; ``/outputs/`` and existing local
    references are never owned. ``discard()`` removes everything tracked when
    the request is rejected before a job takes ownership.
    """

    def __init__(self, service: MediaIngestService) -> None:
        self.service = service
        self.paths: list[str] = []

    async def save_upload(self, upload: UploadFile, prefix: str = "up") -> Path:
        path = await self.service.save_upload(upload, prefix)
        self.paths.append(str(path))
        return path

    async def resolve_reference(self, reference: str | None, prefix: str = "ref") -> Path | None:
        resolved = await self.service._resolve(reference, prefix)
        if resolved is None:
            return None
        path, created = resolved
        if created:
            self.paths.append(str(path))
        return path

    def discard(self) -> None:
        for path in self.paths:
            Path(path).unlink(missing_ok=True)
        if self.paths:
            logger.info(f"[INGEST] Discarded {len(self.paths)} file(s) from a rejected request")
        self.paths = []


_service: MediaIngestService | None = None


def get_media_ingest_service() -> MediaIngestService:
    global _service
    if _service is None:
        _service = MediaIngestService()
    return _service
