"""
Tests for whatsrelay/services/media_storage.py - media filenames and disk writes.
"""
from pathlib import Path

import pytest

from whatsrelay.errors import MediaFetchError
from whatsrelay.services.media_storage import (
    MediaStorage,
    media_kind,
    mime_subtype,
    received_media_filename,
    upload_filename,
)


class TestMimeHelpers:
    @pytest.mark.parametrize(
        "mimetype,expected",
        [
            ("image/jpeg", "image"),
            ("audio/ogg; codecs=opus", "audio"),
            ("APPLICATION/pdf", "application"),
            ("", None),
            (None, None),
            ("garbage", None),
        ],
    )
    def test_media_kind(self, mimetype, expected):
        assert media_kind(mimetype) == expected

    @pytest.mark.parametrize(
        "mimetype,expected",
        [
            ("image/jpeg", "jpeg"),
            ("audio/ogg; codecs=opus", "ogg"),
            ("application/vnd.ms-excel", "vnd.ms-excel"),
            ("video/", "bin"),
            ("nonsense", "bin"),
        ],
    )
    def test_mime_subtype(self, mimetype, expected):
        assert mime_subtype(mimetype) == expected


class TestFilenames:
    def test_received_filename_format(self):
        name = received_media_filename("image/png", now_ms=1700000000123)
        prefix, ms, counter_ext = name.split("-", 2)
        counter, ext = counter_ext.split(".")
        assert prefix == "received"
        assert ms == "1700000000123"
        assert counter.isdigit()
        assert ext == "png"

    def test_received_filenames_unique_within_same_millisecond(self):
        names = {received_media_filename("image/png", now_ms=1) for _ in range(5)}
        assert len(names) == 5

    def test_upload_filename_sanitizes(self):
        assert upload_filename("../../etc/my photo.jpg", now_ms=42) == "42-my_photo.jpg"

    def test_upload_filename_fallback(self):
        assert upload_filename("", now_ms=42) == "42-upload"


class TestMediaStorage:
    async def test_save_writes_bytes(self, tmp_path):
        storage = MediaStorage(str(tmp_path / "uploads"))
        path = await storage.save("a.bin", b"\x00\x01")
        assert Path(path).read_bytes() == b"\x00\x01"
        assert Path(path).parent == tmp_path / "uploads"

    async def test_save_received_uses_mime_subtype(self, tmp_path):
        storage = MediaStorage(str(tmp_path))
        path = await storage.save_received("audio/ogg; codecs=opus", b"ogg")
        assert Path(path).name.startswith("received-")
        assert path.endswith(".ogg")

    async def test_write_failure_raises_media_fetch_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file")
        storage = MediaStorage(str(blocker))
        with pytest.raises(MediaFetchError):
            await storage.save("a.bin", b"data")

    def test_ensure_dir_creates_directory(self, tmp_path):
        storage = MediaStorage(str(tmp_path / "nested" / "media"))
        storage.ensure_dir()
        assert (tmp_path / "nested" / "media").is_dir()
