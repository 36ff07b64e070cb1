"""Asset Upload Orchestrator.

Drives image and video uploads through the Assets API:

    UNREGISTERED -> REGISTERED -> UPLOADING -> FINALIZING -> [POLLING] -> DONE
                                  (any non-terminal state) -> FAILED

Key Features:
- Single-request upload for images and small videos
- Chunked (multipart) upload for large videos with a bounded worker pool
- Join barrier: finalize only runs once every chunk reported success
- First chunk failure cancels queued chunks and fails the upload
- Optional polling until every recipe is AVAILABLE, cancelable by
  KeyboardInterrupt or a cancel event

Every invocation is all-or-nothing: failures raise UploadPhaseError
tagged with the phase (and chunk index), and nothing is kept for resume.
A poll that runs out of time raises PollTimeoutError instead, because
the asset may still finish processing.
"""

import json
import math
import threading
import time
from concurrent.futures import CancelledError, ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from linkedin_ads.adapters.restli_client import RestliClient
from linkedin_ads.core.constants import (
    ASSET_FAILED_STATUSES,
    ASSET_READY_STATUS,
    ASSETS_PATH,
    DEFAULT_IMAGE_RECIPE,
    DEFAULT_VIDEO_RECIPE,
    MULTIPART_UPLOAD_MECHANISM,
    POLL_FIELDS,
    POLL_INTERVAL_SECONDS,
    POLL_TIMEOUT_SECONDS,
    RETRY_BACKOFF_FACTOR,
    RETRY_BACKOFF_MAX_SECONDS,
    SINGLE_UPLOAD_MECHANISM,
    UPLOAD_CHUNK_MAX_ATTEMPTS,
    UPLOAD_CHUNK_SIZE_BYTES,
    UPLOAD_MAX_WORKERS,
    VIDEO_MULTIPART_THRESHOLD_BYTES,
    UploadPhase,
)
from linkedin_ads.core.exceptions import (
    ApiError,
    LinkedInAdsError,
    PollTimeoutError,
    TransportError,
    UploadPhaseError,
)
from linkedin_ads.core.protocols import ByteSource
from linkedin_ads.domain.models import (
    MediaKind,
    RestliLiteral,
    Scalar,
    UploadChunk,
    UploadResult,
    UploadSession,
    UploadState,
)
from linkedin_ads.utils.decorators import backoff_delay
from linkedin_ads.utils.urn_utils import build_linkedin_urn, id_from_urn, is_urn, validate_urn

ASSET_ENTITY_TYPE = "digitalmediaAsset"


def plan_chunks(total_size: int, chunk_size: int) -> List[Tuple[int, int]]:
    """Partition [0, total_size) into contiguous (offset, length) ranges.

    Every range has chunk_size bytes except possibly the last; there are
    ceil(total_size / chunk_size) ranges.

    Examples:
        >>> plan_chunks(10, 4)
        [(0, 4), (4, 4), (8, 2)]
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    count = math.ceil(total_size / chunk_size)
    return [
        (index * chunk_size, min(chunk_size, total_size - index * chunk_size))
        for index in range(count)
    ]


def validate_chunk_coverage(chunks: List[UploadChunk], total_size: int) -> None:
    """Check chunks cover [0, total_size) exactly, in index order.

    Raises:
        ValueError: On gaps, overlaps, empty ranges or a wrong total
    """
    expected_offset = 0
    for position, chunk in enumerate(sorted(chunks, key=lambda c: c.index)):
        if chunk.index != position:
            raise ValueError(f"Chunk indices are not contiguous at {position}")
        if chunk.length <= 0:
            raise ValueError(f"Chunk {chunk.index} is empty")
        if chunk.offset != expected_offset:
            raise ValueError(
                f"Chunk {chunk.index} starts at {chunk.offset}, expected {expected_offset}"
            )
        expected_offset += chunk.length
    if expected_offset != total_size:
        raise ValueError(f"Chunks cover {expected_offset} bytes, file has {total_size}")


class AssetUploadOrchestrator:
    """Runs the register -> upload -> finalize -> poll pipeline."""

    def __init__(
        self,
        client: RestliClient,
        max_workers: int = UPLOAD_MAX_WORKERS,
        chunk_size: int = UPLOAD_CHUNK_SIZE_BYTES,
        multipart_threshold: int = VIDEO_MULTIPART_THRESHOLD_BYTES,
        chunk_max_attempts: int = UPLOAD_CHUNK_MAX_ATTEMPTS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        poll_timeout: float = POLL_TIMEOUT_SECONDS,
        poll_max_attempts: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            client: Dispatcher used for every API and upload call
            max_workers: Concurrent chunk uploads
            chunk_size: Planned bytes per chunk
            multipart_threshold: Videos of at least this size are chunked
            chunk_max_attempts: Attempts per chunk before failing the upload
            poll_interval: Seconds between processing-status polls
            poll_timeout: Overall polling budget in seconds
            poll_max_attempts: Optional cap on poll calls
            cancel_event: Set to stop chunk uploads and polling
            sleep: Sleep function used between chunk retries
        """
        self.client = client
        self.max_workers = max(1, max_workers)
        self.chunk_size = chunk_size
        self.multipart_threshold = multipart_threshold
        self.chunk_max_attempts = max(1, chunk_max_attempts)
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.poll_max_attempts = poll_max_attempts
        self.cancel_event = cancel_event or threading.Event()
        self._sleep = sleep

    # ============================================================================
    # Public API
    # ============================================================================

    def upload_image(
        self,
        owner_urn: str,
        source: ByteSource,
        recipe: str = DEFAULT_IMAGE_RECIPE,
        wait: bool = False,
    ) -> UploadResult:
        """Upload an image (always single-request)."""
        session = UploadSession(kind=MediaKind.IMAGE, owner_urn=owner_urn, total_size=source.size)
        return self._run(session, source, recipe, wait)

    def upload_video(
        self,
        owner_urn: str,
        source: ByteSource,
        recipe: str = DEFAULT_VIDEO_RECIPE,
        wait: bool = False,
    ) -> UploadResult:
        """Upload a video, chunked when at or above the multipart threshold."""
        session = UploadSession(kind=MediaKind.VIDEO, owner_urn=owner_urn, total_size=source.size)
        return self._run(session, source, recipe, wait)

    def wants_multipart(self, session: UploadSession) -> bool:
        return session.kind is MediaKind.VIDEO and session.total_size >= self.multipart_threshold

    # ============================================================================
    # State machine driver
    # ============================================================================

    def _run(self, session: UploadSession, source: ByteSource, recipe: str, wait: bool) -> UploadResult:
        try:
            validate_urn(session.owner_urn)
        except LinkedInAdsError as e:
            raise UploadPhaseError(
                f"Invalid owner: {e.message}", phase=UploadPhase.REGISTER, owner_urn=session.owner_urn
            ) from e
        if session.total_size <= 0:
            raise UploadPhaseError(
                "Cannot upload an empty file", phase=UploadPhase.REGISTER, owner_urn=session.owner_urn
            )

        logger.info(
            f"Uploading {session.kind.value} ({session.total_size} bytes) for {session.owner_urn}"
        )
        try:
            self._register(session, recipe)
            self._upload(session, source)
            self._finalize(session)
            if wait:
                self._poll(session)
            else:
                # Processing is not confirmed on this path
                session.transition(UploadState.DONE)
        except PollTimeoutError:
            raise
        except UploadPhaseError:
            self._fail(session)
            raise
        except (ApiError, TransportError, LinkedInAdsError) as e:
            phase = session.current_phase
            self._fail(session)
            raise UploadPhaseError(
                f"{phase.value.capitalize()} failed: {e}",
                phase=phase,
                asset_urn=session.asset_urn,
                owner_urn=session.owner_urn,
            ) from e

        logger.info(f"Upload complete: {session.asset_urn}")
        return UploadResult(
            asset_urn=session.asset_urn,
            state=session.state,
            chunk_count=len(session.chunks) or 1,
            confirmed=wait,
            register_response=session.register_response,
            finalize_response=session.finalize_response,
            processing_status=session.processing_status,
        )

    @staticmethod
    def _fail(session: UploadSession) -> None:
        if session.state not in (UploadState.DONE, UploadState.FAILED):
            session.transition(UploadState.FAILED)

    def _error(self, session: UploadSession, message: str, **kwargs) -> UploadPhaseError:
        return UploadPhaseError(
            message,
            phase=kwargs.pop("phase", session.current_phase),
            asset_urn=session.asset_urn,
            owner_urn=session.owner_urn,
            **kwargs,
        )

    # ============================================================================
    # Register
    # ============================================================================

    def _register(self, session: UploadSession, recipe: str) -> None:
        request: Dict[str, Any] = {
            "owner": session.owner_urn,
            "recipes": [recipe],
            "serviceRelationships": [
                {"identifier": "urn:li:userGeneratedContent", "relationshipType": "OWNER"}
            ],
        }
        if session.kind is MediaKind.IMAGE:
            request["supportedUploadMechanism"] = ["SYNCHRONOUS_UPLOAD"]
        elif self.wants_multipart(session):
            request["supportedUploadMechanism"] = ["MULTIPART_UPLOAD"]
            request["fileSize"] = session.total_size

        response = self.client.call(
            "POST",
            ASSETS_PATH,
            query={"action": Scalar("registerUpload")},
            json_body={"registerUploadRequest": request},
        )
        value = self._json(response.body).get("value")
        if not isinstance(value, dict):
            raise self._error(session, "Register response is missing 'value'")

        session.register_response = value
        session.asset_urn = value.get("asset")
        mechanism = value.get("uploadMechanism") or {}

        if SINGLE_UPLOAD_MECHANISM in mechanism:
            http = mechanism[SINGLE_UPLOAD_MECHANISM]
            session.upload_url = http.get("uploadUrl")
            session.upload_headers = self._string_headers(http.get("headers"))
            if not session.upload_url:
                raise self._error(session, "Register response is missing uploadUrl")
        elif MULTIPART_UPLOAD_MECHANISM in mechanism:
            self._register_multipart(session, value, mechanism[MULTIPART_UPLOAD_MECHANISM])
        else:
            raise self._error(session, "Register response has no supported uploadMechanism")

        if not session.asset_urn:
            raise self._error(session, "Register response is missing 'asset'")

        logger.debug(
            f"Registered {session.asset_urn}: "
            f"{len(session.chunks) if session.chunked else 1} upload URL(s)"
        )
        session.transition(UploadState.REGISTERED)

    def _register_multipart(self, session: UploadSession, value: Dict[str, Any], multipart: Dict[str, Any]) -> None:
        session.upload_token = multipart.get("metadata")
        session.media_artifact = value.get("mediaArtifact")
        parts = multipart.get("partUploadRequests") or []
        if not session.upload_token or not session.media_artifact or not parts:
            raise self._error(
                session, "Multipart register response is missing metadata, mediaArtifact or parts"
            )

        planned = plan_chunks(session.total_size, self.chunk_size)
        chunks: List[UploadChunk] = []
        for index, part in enumerate(parts):
            byte_range = part.get("byteRange")
            if byte_range:
                try:
                    first, last = int(byte_range["firstByte"]), int(byte_range["lastByte"])
                except (KeyError, TypeError, ValueError) as e:
                    raise self._error(session, f"Part {index} has an invalid byteRange") from e
                offset, length = first, last - first + 1
            elif len(parts) == len(planned):
                offset, length = planned[index]
            else:
                raise self._error(
                    session,
                    f"Register returned {len(parts)} parts without byte ranges; "
                    f"expected {len(planned)}",
                )
            if not part.get("url"):
                raise self._error(session, f"Part {index} is missing its upload url")
            chunks.append(
                UploadChunk(
                    index=index,
                    offset=offset,
                    length=length,
                    upload_url=part["url"],
                    headers=self._string_headers(part.get("headers")),
                )
            )

        try:
            validate_chunk_coverage(chunks, session.total_size)
        except ValueError as e:
            raise self._error(session, f"Invalid part layout: {e}") from e
        if len(chunks) != len(planned):
            logger.debug(f"Server issued {len(chunks)} parts (planned {len(planned)})")
        session.chunks = chunks

    # ============================================================================
    # Upload
    # ============================================================================

    def _upload(self, session: UploadSession, source: ByteSource) -> None:
        session.transition(UploadState.UPLOADING)
        if session.chunked:
            self._upload_chunks(session, source)
            return

        response = self.client.put_bytes(
            session.upload_url,
            source.read_range(0, session.total_size),
            headers=session.upload_headers,
            include_auth=session.kind is MediaKind.IMAGE,
        )
        logger.debug(f"Single upload accepted: HTTP {response.status}")

    def _upload_chunks(self, session: UploadSession, source: ByteSource) -> None:
        """Upload chunks concurrently and join on all of them.

        The executor's context exit is the join barrier: no chunk upload is
        still running when this method returns or raises.
        """
        chunk_cancel = threading.Event()
        failure: Optional[Tuple[UploadChunk, BaseException]] = None
        workers = min(self.max_workers, len(session.chunks))
        logger.info(f"Uploading {len(session.chunks)} chunks with {workers} workers")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="chunk") as executor:
            futures = {
                executor.submit(self._upload_chunk, chunk, source, chunk_cancel): chunk
                for chunk in session.chunks
            }
            try:
                for future in as_completed(futures):
                    chunk = futures[future]
                    try:
                        chunk.etag = future.result()
                    except CancelledError:
                        continue
                    except Exception as e:
                        failure = (chunk, e)
                        break
                    logger.debug(f"Chunk {chunk.index} done ({chunk.length} bytes)")
            except KeyboardInterrupt:
                chunk_cancel.set()
                for future in futures:
                    future.cancel()
                raise
            if failure is not None:
                chunk_cancel.set()
                for future in futures:
                    future.cancel()

        if failure is not None:
            chunk, cause = failure
            raise UploadPhaseError(
                f"Chunk {chunk.index} failed: {cause}",
                phase=UploadPhase.UPLOAD,
                chunk_index=chunk.index,
                asset_urn=session.asset_urn,
                owner_urn=session.owner_urn,
                details={"completed_chunks": sum(1 for c in session.chunks if c.completed)},
            ) from cause

        pending = session.pending_chunks()
        if pending:
            raise UploadPhaseError(
                f"{len(pending)} chunk(s) not acknowledged",
                phase=UploadPhase.UPLOAD,
                chunk_index=pending[0].index,
                asset_urn=session.asset_urn,
                owner_urn=session.owner_urn,
            )

    def _upload_chunk(self, chunk: UploadChunk, source: ByteSource, cancel: threading.Event) -> str:
        """Upload one chunk with its own retry budget; returns the ETag."""
        for attempt in range(1, self.chunk_max_attempts + 1):
            if cancel.is_set() or self.cancel_event.is_set():
                raise CancelledError(f"chunk {chunk.index} cancelled")
            try:
                response = self.client.put_bytes(
                    chunk.upload_url,
                    source.read_range(chunk.offset, chunk.length),
                    headers=chunk.headers,
                    max_tries=1,
                )
            except (TransportError, ApiError) as e:
                retryable = isinstance(e, TransportError) or e.status_code >= 500
                if not retryable or attempt == self.chunk_max_attempts:
                    raise
                wait_time = backoff_delay(attempt, RETRY_BACKOFF_FACTOR, RETRY_BACKOFF_MAX_SECONDS)
                logger.warning(
                    f"Chunk {chunk.index} attempt {attempt}/{self.chunk_max_attempts} failed: "
                    f"{e.message}; retrying in {wait_time:.1f}s"
                )
                self._sleep(wait_time)
                continue

            etag = response.header("etag")
            if not etag:
                raise UploadPhaseError(
                    "Upload response is missing the ETag header",
                    phase=UploadPhase.UPLOAD,
                    chunk_index=chunk.index,
                )
            return etag.strip('"')
        raise AssertionError("unreachable")

    # ============================================================================
    # Finalize
    # ============================================================================

    def _finalize(self, session: UploadSession) -> None:
        pending = session.pending_chunks()
        if pending:
            raise self._error(
                session, "Finalize requested with unacknowledged chunks",
                chunk_index=pending[0].index,
            )
        session.transition(UploadState.FINALIZING)

        if session.chunked:
            part_responses = [
                {"headers": {"ETag": chunk.etag}, "httpStatusCode": 200}
                for chunk in sorted(session.chunks, key=lambda c: c.index)
            ]
            response = self.client.call(
                "POST",
                ASSETS_PATH,
                query={"action": Scalar("completeMultiPartUpload")},
                json_body={
                    "completeMultipartUploadRequest": {
                        "mediaArtifact": session.media_artifact,
                        "metadata": session.upload_token,
                        "partUploadResponses": part_responses,
                    }
                },
            )
        else:
            response = self.client.call(
                "GET", f"{ASSETS_PATH}/{id_from_urn(session.asset_urn)}"
            )

        session.finalize_response = self._json(response.body)
        finalized_urn = self._asset_urn_from(session.finalize_response)
        if finalized_urn:
            session.asset_urn = finalized_urn
        logger.debug(f"Finalized {session.asset_urn}")

    @staticmethod
    def _asset_urn_from(body: Dict[str, Any]) -> Optional[str]:
        value = body.get("value") if isinstance(body.get("value"), dict) else body
        for key in ("asset", "id"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate:
                return candidate if is_urn(candidate) else build_linkedin_urn(ASSET_ENTITY_TYPE, candidate)
        return None

    # ============================================================================
    # Poll
    # ============================================================================

    def _poll(self, session: UploadSession) -> None:
        session.transition(UploadState.POLLING)
        asset_path = f"{ASSETS_PATH}/{id_from_urn(session.asset_urn)}"
        deadline = time.monotonic() + self.poll_timeout
        attempts = 0

        while True:
            attempts += 1
            try:
                status = self._poll_once(session, asset_path, attempts)
                if status == ASSET_READY_STATUS:
                    session.transition(UploadState.DONE)
                    return
                if status in ASSET_FAILED_STATUSES:
                    raise self._error(session, f"Asset processing ended with status {status}")

                out_of_attempts = self.poll_max_attempts is not None and attempts >= self.poll_max_attempts
                if out_of_attempts or time.monotonic() + self.poll_interval > deadline:
                    raise PollTimeoutError(
                        "Asset processing not confirmed in time",
                        asset_urn=session.asset_urn,
                        attempts=attempts,
                        last_status=status,
                    )
                cancelled = self.cancel_event.wait(self.poll_interval)
            except KeyboardInterrupt:
                cancelled = True
            if cancelled:
                raise PollTimeoutError(
                    "Polling interrupted",
                    asset_urn=session.asset_urn,
                    attempts=attempts,
                    cancelled=True,
                    last_status=session.processing_status,
                )

    def _poll_once(self, session: UploadSession, asset_path: str, attempt: int) -> str:
        response = self.client.call(
            "GET", asset_path, query={"fields": RestliLiteral(POLL_FIELDS)}
        )
        status = self.processing_status(self._json(response.body))
        session.processing_status = status
        logger.debug(f"Poll {attempt}: {session.asset_urn} is {status}")
        return status

    @staticmethod
    def processing_status(body: Dict[str, Any]) -> str:
        """Summarize recipe statuses into one processing status.

        AVAILABLE when every recipe is available, the first failed status
        when any recipe failed, otherwise the first pending status.
        """
        recipes = body.get("recipes") if isinstance(body, dict) else None
        if not recipes:
            return str(body.get("status") or "UNKNOWN") if isinstance(body, dict) else "UNKNOWN"
        statuses = [str(r.get("status") or "UNKNOWN") for r in recipes if isinstance(r, dict)]
        for status in statuses:
            if status in ASSET_FAILED_STATUSES:
                return status
        if statuses and all(status == ASSET_READY_STATUS for status in statuses):
            return ASSET_READY_STATUS
        return next((s for s in statuses if s != ASSET_READY_STATUS), "UNKNOWN")

    # ============================================================================
    # Helpers
    # ============================================================================

    @staticmethod
    def _json(text: str) -> Dict[str, Any]:
        if not text or not text.strip():
            return {}
        try:
            payload = json.loads(text)
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    @staticmethod
    def _string_headers(value: Any) -> Dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {str(k): v for k, v in value.items() if isinstance(v, str)}
