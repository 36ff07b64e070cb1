"""Unit tests for linkedin_ads.infrastructure.file_source and shared.storage."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from linkedin_ads.core.exceptions import FileSourceError
from linkedin_ads.infrastructure.file_source import FileSource, local_path, resolve_file_source
from shared.storage.s3_handler import S3Handler, parse_s3_url


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "banner.png"
    path.write_bytes(bytes(range(256)) * 4)
    return path


class TestLocalReferences:
    @pytest.mark.parametrize("prefix", ["", "@", "file://"])
    def test_local_prefixes(self, sample_file, prefix):
        with resolve_file_source(f"{prefix}{sample_file}") as source:
            assert source.size == 1024
            assert source.file_name == "banner.png"
            assert not source.temporary

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileSourceError, match="File not found"):
            resolve_file_source(str(tmp_path / "nope.png"))

    def test_local_path(self):
        assert str(local_path("@./a.png")) == "a.png"


class TestFileSource:
    def test_read_range(self, sample_file):
        source = FileSource(sample_file, "banner.png")
        assert source.read_range(10, 3) == bytes([10, 11, 12])
        assert len(source.read_all()) == 1024

    def test_range_outside_file(self, sample_file):
        source = FileSource(sample_file, "banner.png")
        with pytest.raises(FileSourceError, match="outside file"):
            source.read_range(1000, 100)

    def test_close_removes_temporary_file(self, sample_file):
        source = FileSource(sample_file, "banner.png", temporary=True)
        source.close()
        assert not sample_file.exists()

    def test_close_keeps_local_file(self, sample_file):
        FileSource(sample_file, "banner.png").close()
        assert sample_file.exists()


class TestHttpDownload:
    def test_streams_to_temporary_file(self):
        response = MagicMock()
        response.iter_content.return_value = [b"abc", b"", b"def"]
        session = MagicMock()
        session.get.return_value.__enter__.return_value = response

        source = resolve_file_source("https://cdn.example.com/media/clip.mp4", session=session)
        try:
            assert source.temporary
            assert source.file_name == "clip.mp4"
            assert source.read_all() == b"abcdef"
        finally:
            source.close()
        assert not source.path.exists()

    def test_download_failure(self):
        session = MagicMock()
        session.get.return_value.__enter__.return_value.raise_for_status.side_effect = (
            requests.exceptions.HTTPError("404")
        )
        with pytest.raises(FileSourceError, match="Download failed"):
            resolve_file_source("https://cdn.example.com/missing.png", session=session)


class TestS3Download:
    def test_downloads_with_handler(self):
        handler = MagicMock()

        def fake_download(bucket, key, file_path):
            with open(file_path, "wb") as f:
                f.write(b"12345")
            return 5

        handler.download_to_file.side_effect = fake_download

        with resolve_file_source("s3://media/ads/video.mp4", s3_handler_factory=lambda: handler) as source:
            assert source.size == 5
            assert source.file_name == "video.mp4"
        handler.download_to_file.assert_called_once()
        assert handler.download_to_file.call_args.args[:2] == ("media", "ads/video.mp4")

    def test_invalid_url(self):
        with pytest.raises(FileSourceError, match="bucket and key"):
            resolve_file_source("s3://media", s3_handler_factory=MagicMock)

    def test_handler_failure(self):
        handler = MagicMock()
        handler.download_to_file.side_effect = RuntimeError("access denied")
        with pytest.raises(FileSourceError, match="S3 download failed"):
            resolve_file_source("s3://media/a.png", s3_handler_factory=lambda: handler)


class TestS3Handler:
    def test_parse_s3_url(self):
        assert parse_s3_url("s3://bucket/path/to/key.mp4") == ("bucket", "path/to/key.mp4")
        with pytest.raises(ValueError):
            parse_s3_url("https://bucket/key")

    def test_env_credentials_and_presign(self, monkeypatch):
        monkeypatch.delenv("S3_ACCESS_KEY", raising=False)
        monkeypatch.delenv("S3_ENDPOINT", raising=False)
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIA")
        monkeypatch.setenv("S3_SECRET_KEY", "secret")

        with patch("shared.storage.s3_handler.Minio") as minio_cls:
            minio_cls.return_value.presigned_get_object.return_value = "https://signed"
            handler = S3Handler()
            url = handler.presign_get("s3://bucket/key.png", expires_seconds=600)

        assert url == "https://signed"
        kwargs = minio_cls.call_args.kwargs
        assert kwargs["endpoint"] == "s3.amazonaws.com"
        assert kwargs["access_key"] == "AKIA"
        assert kwargs["secret_key"] == "secret"
        call = minio_cls.return_value.presigned_get_object.call_args.kwargs
        assert call["bucket_name"] == "bucket"
        assert call["expires"].total_seconds() == 600
