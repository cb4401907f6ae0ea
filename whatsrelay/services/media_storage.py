"""
Media storage - received and uploaded media are written to MEDIA_DIR and
referenced from message logs by path, never embedded in the database.
"""
import asyncio
import itertools
import logging
import re
import time
from pathlib import Path
from typing import Optional

from whatsrelay.errors import MediaFetchError

logger = logging.getLogger(__name__)

_counter = itertools.count(1)
_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def media_kind(mimetype: Optional[str]) -> Optional[str]:
    """Main MIME type: 'image/jpeg' -> 'image'."""
    if not mimetype or "/" not in mimetype:
        return None
    return mimetype.split("/", 1)[0].strip().lower() or None


def mime_subtype(mimetype: str) -> str:
    """'audio/ogg; codecs=opus' -> 'ogg'. Falls back to 'bin'."""
    if "/" not in mimetype:
        return "bin"
    subtype = mimetype.split("/", 1)[1].split(";", 1)[0].strip().lower()
    subtype = _SAFE_NAME.sub("", subtype)
    return subtype or "bin"


def received_media_filename(mimetype: str, now_ms: Optional[int] = None) -> str:
    """received-<epoch ms>-<process counter>.<mime subtype>"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"received-{now_ms}-{next(_counter)}.{mime_subtype(mimetype)}"


def upload_filename(original_name: str, now_ms: Optional[int] = None) -> str:
    """<epoch ms>-<sanitized original name>"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    name = _SAFE_NAME.sub("_", Path(original_name or "upload").name).strip("._") or "upload"
    return f"{now_ms}-{name}"


class MediaStorage:
    """Writes media bytes under a single directory."""

    def __init__(self, media_dir: str):
        self.media_dir = Path(media_dir)

    def ensure_dir(self) -> None:
        self.media_dir.mkdir(parents=True, exist_ok=True)

    async def save(self, filename: str, data: bytes) -> str:
        """Write data and return the stored path (relative to the working directory when media_dir is)."""
        path = self.media_dir / filename
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise MediaFetchError(f"Failed to store media {filename}: {e}") from e
        logger.debug("Stored media %s (%d bytes)", path, len(data))
        return str(path)

    async def save_received(self, mimetype: str, data: bytes) -> str:
        return await self.save(received_media_filename(mimetype), data)

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
