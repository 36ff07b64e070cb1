"""Protocol definitions (interfaces) for the LinkedIn Ads CLI.

These interfaces decouple the core from requests and from the way file
bytes are obtained, so tests can substitute simple fakes.
"""

from typing import Any, Mapping, Optional, Protocol


class Transport(Protocol):
    """The subset of RestliSession used by the dispatcher."""

    def request(
        self,
        method: str,
        url: str,
        raw_query: Optional[str] = None,
        data: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send one HTTP request and return a requests.Response-like object.

        Raises:
            requests.exceptions.RequestException: On connection-level failure
        """
        ...

    def close(self) -> None:
        ...


class ByteSource(Protocol):
    """A seekable byte source of known length."""

    @property
    def size(self) -> int:
        """Total length in bytes."""
        ...

    def read_range(self, offset: int, length: int) -> bytes:
        """Read exactly length bytes starting at offset.

        Must be safe to call concurrently for disjoint ranges.
        """
        ...
