"""File references for uploads.

Resolves local paths, @path, file://path, http(s):// URLs and s3:// URLs
to a local file of known size. Remote sources are downloaded to a
temporary file that is removed on close.
"""

import os
import tempfile
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

import requests
from loguru import logger

from linkedin_ads.core.constants import REQUEST_TIMEOUT_SECONDS
from linkedin_ads.core.exceptions import FileSourceError
from shared.storage.s3_handler import S3Handler, parse_s3_url

DOWNLOAD_CHUNK_BYTES = 1024 * 1024


class FileSource:
    """A local file of known length, readable by byte range."""

    def __init__(self, path: Path, file_name: str, temporary: bool = False):
        self.path = Path(path)
        self.file_name = file_name
        self.temporary = temporary
        self._size = self.path.stat().st_size

    @property
    def size(self) -> int:
        return self._size

    def read_range(self, offset: int, length: int) -> bytes:
        """Read exactly `length` bytes at `offset`.

        Opens its own handle so concurrent readers of disjoint ranges do
        not share a file position.
        """
        if offset < 0 or length < 0 or offset + length > self._size:
            raise FileSourceError(
                f"Byte range {offset}+{length} outside file of {self._size} bytes",
                reference=str(self.path),
            )
        with open(self.path, "rb") as f:
            f.seek(offset)
            data = f.read(length)
        if len(data) != length:
            raise FileSourceError(
                f"Short read: expected {length} bytes at {offset}, got {len(data)}",
                reference=str(self.path),
            )
        return data

    def read_all(self) -> bytes:
        return self.read_range(0, self._size)

    def close(self) -> None:
        """Remove the temporary download, if any."""
        if self.temporary:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            self.temporary = False

    def __enter__(self) -> "FileSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"FileSource({self.file_name!r}, {self._size} bytes)"


def local_path(reference: str) -> Path:
    """Strip @ and file:// prefixes from a local reference."""
    if reference.startswith("@"):
        return Path(reference[1:])
    if reference.startswith("file://"):
        return Path(urlparse(reference).path or reference[len("file://"):])
    return Path(reference)


def resolve_file_source(
    reference: str,
    s3_handler_factory: Callable[[], S3Handler] = S3Handler,
    session: Optional[requests.Session] = None,
) -> FileSource:
    """Resolve a file reference to a readable FileSource.

    Args:
        reference: Local path, @path, file://path, http(s):// URL or s3:// URL
        s3_handler_factory: Builds the S3 handler for s3:// references
        session: requests session for http(s) downloads

    Returns:
        FileSource (close it to remove temporary downloads)

    Raises:
        FileSourceError: If the reference cannot be resolved
    """
    if reference.startswith("s3://"):
        return _download_s3(reference, s3_handler_factory)
    if reference.startswith("http://") or reference.startswith("https://"):
        return _download_http(reference, session or requests.Session())

    path = local_path(reference)
    if not path.is_file():
        raise FileSourceError("File not found", reference=reference)
    return FileSource(path, path.name)


def _temp_path(suffix: str) -> Path:
    handle, name = tempfile.mkstemp(prefix="linkedin-upload-", suffix=suffix)
    os.close(handle)
    return Path(name)


def _download_http(url: str, session: requests.Session) -> FileSource:
    file_name = urlparse(url).path.rsplit("/", 1)[-1] or "download"
    target = _temp_path(Path(file_name).suffix)
    logger.info(f"Downloading {url}")
    try:
        with session.get(url, stream=True, timeout=REQUEST_TIMEOUT_SECONDS) as response:
            response.raise_for_status()
            with open(target, "wb") as f:
                for block in response.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                    if block:
                        f.write(block)
    except requests.exceptions.RequestException as e:
        target.unlink(missing_ok=True)
        raise FileSourceError("Download failed", reference=url, details={"error": str(e)}) from e
    return FileSource(target, file_name, temporary=True)


def _download_s3(url: str, s3_handler_factory: Callable[[], S3Handler]) -> FileSource:
    try:
        bucket, key = parse_s3_url(url)
    except ValueError as e:
        raise FileSourceError(str(e), reference=url) from e

    file_name = key.rsplit("/", 1)[-1] or "s3-object"
    target = _temp_path(Path(file_name).suffix)
    try:
        s3_handler_factory().download_to_file(bucket, key, str(target))
    except Exception as e:
        target.unlink(missing_ok=True)
        raise FileSourceError("S3 download failed", reference=url, details={"error": str(e)}) from e
    return FileSource(target, file_name, temporary=True)
