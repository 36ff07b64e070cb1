"""Unit tests for linkedin_ads.orchestrator.upload_orchestrator."""

import json
import threading
import time

import pytest
import requests

from linkedin_ads.core.constants import (
    MULTIPART_UPLOAD_MECHANISM,
    SINGLE_UPLOAD_MECHANISM,
    UploadPhase,
)
from linkedin_ads.core.exceptions import PollTimeoutError, UploadPhaseError
from linkedin_ads.domain.models import UploadChunk, UploadState
from linkedin_ads.orchestrator.upload_orchestrator import (
    AssetUploadOrchestrator,
    plan_chunks,
    validate_chunk_coverage,
)
from tests.conftest import make_response

OWNER = "urn:li:organization:2414183"
ASSET = "urn:li:digitalmediaAsset:C5505AQH"
MIB = 1024 * 1024


class BytesSource:
    """In-memory ByteSource."""

    def __init__(self, data: bytes):
        self.data = data

    @property
    def size(self) -> int:
        return len(self.data)

    def read_range(self, offset: int, length: int) -> bytes:
        return self.data[offset:offset + length]


class FakeAssetsBackend:
    """Routes session.request calls to canned Assets API responses."""

    def __init__(self, register_value, poll_statuses=(), part_failures=None):
        self.register_value = register_value
        self.poll_statuses = list(poll_statuses)
        # chunk url -> list of statuses to return before succeeding
        self.part_failures = dict(part_failures or {})
        self.calls = []
        self.lock = threading.Lock()

    def __call__(self, method, url, raw_query=None, data=None, headers=None, timeout=None):
        with self.lock:
            self.calls.append({"method": method, "url": url, "query": raw_query, "data": data, "headers": headers})
            failures = self.part_failures.get(url)
            failure = failures.pop(0) if failures else None

        if method == "POST" and raw_query == "action=registerUpload":
            return make_response(200, {"value": self.register_value})
        if method == "PUT":
            if failure is not None:
                return make_response(failure, "part rejected")
            return make_response(201, None, {"ETag": f'"etag-{url.rsplit("/", 1)[-1]}"'})
        if method == "POST" and raw_query == "action=completeMultiPartUpload":
            return make_response(200, None)
        if method == "GET" and raw_query and raw_query.startswith("fields="):
            status = self.poll_statuses.pop(0)
            return make_response(200, {"id": ASSET, "recipes": [{"recipe": "r", "status": status}]})
        if method == "GET":
            return make_response(200, {"id": "C5505AQH", "status": "ALLOWED"})
        raise AssertionError(f"unexpected call {method} {url}?{raw_query}")

    def find(self, method, query=None):
        return [c for c in self.calls if c["method"] == method and (query is None or c["query"] == query)]

    def register_request(self):
        (call,) = self.find("POST", "action=registerUpload")
        return json.loads(call["data"])["registerUploadRequest"]


def single_register_value():
    return {
        "asset": ASSET,
        "mediaArtifact": "urn:li:digitalmediaMediaArtifact:(urn:li:digitalmediaAsset:C5505AQH,r)",
        "uploadMechanism": {
            SINGLE_UPLOAD_MECHANISM: {
                "uploadUrl": "https://upload.example.com/dms/C5505AQH?sig=x%2Fy",
                "headers": {"media-type-family": "STILLIMAGE"},
            }
        },
    }


def multipart_register_value(total: int, chunk: int):
    parts = [
        {
            "url": f"https://upload.example.com/part/{index}",
            "byteRange": {"firstByte": offset, "lastByte": offset + length - 1},
            "headers": {"Content-Type": "application/octet-stream"},
        }
        for index, (offset, length) in enumerate(plan_chunks(total, chunk))
    ]
    return {
        "asset": ASSET,
        "mediaArtifact": "urn:li:digitalmediaMediaArtifact:(urn:li:digitalmediaAsset:C5505AQH,r)",
        "uploadMechanism": {
            MULTIPART_UPLOAD_MECHANISM: {"metadata": "upload-token-123", "partUploadRequests": parts}
        },
    }


@pytest.fixture
def make_orchestrator(client, fake_session, sleeps):
    def build(backend, **kwargs):
        fake_session.request.side_effect = backend
        kwargs.setdefault("poll_interval", 0)
        return AssetUploadOrchestrator(client, sleep=sleeps.append, **kwargs)

    return build


class TestChunkPlanning:
    def test_plan_chunks(self):
        assert plan_chunks(10, 4) == [(0, 4), (4, 4), (8, 2)]

    def test_exact_multiple(self):
        assert plan_chunks(8, 4) == [(0, 4), (4, 4)]

    def test_large_video_chunk_count(self):
        size = 200 * MIB + 1
        chunks = plan_chunks(size, 4 * MIB)
        assert len(chunks) == 51
        assert sum(length for _, length in chunks) == size
        assert chunks[-1] == (200 * MIB, 1)

    def test_coverage_rejects_gap(self):
        chunks = [UploadChunk(0, 0, 4, "u0"), UploadChunk(1, 5, 5, "u1")]
        with pytest.raises(ValueError, match="expected 4"):
            validate_chunk_coverage(chunks, 10)

    def test_coverage_rejects_short_total(self):
        with pytest.raises(ValueError, match="cover 4 bytes"):
            validate_chunk_coverage([UploadChunk(0, 0, 4, "u0")], 10)


class TestImageUpload:
    def test_two_megabyte_image_single_request(self, make_orchestrator):
        backend = FakeAssetsBackend(single_register_value())
        orchestrator = make_orchestrator(backend)
        data = b"\x89PNG" + b"\x00" * (2 * MIB - 4)

        result = orchestrator.upload_image(OWNER, BytesSource(data))

        assert result.asset_urn == ASSET
        assert result.state is UploadState.DONE
        assert result.chunk_count == 1
        assert not result.confirmed
        assert result.finalize_response == {"id": "C5505AQH", "status": "ALLOWED"}

        (put,) = backend.find("PUT")
        assert put["url"] == "https://upload.example.com/dms/C5505AQH"
        assert put["query"] == "sig=x%2Fy"
        assert put["data"] == data
        assert put["headers"]["Authorization"] == "Bearer test-token"
        assert put["headers"]["media-type-family"] == "STILLIMAGE"

        (finalize,) = [c for c in backend.find("GET") if c["url"].endswith("/assets/C5505AQH")]
        assert finalize["query"] is None

    def test_register_request_shape(self, make_orchestrator):
        backend = FakeAssetsBackend(single_register_value())
        make_orchestrator(backend).upload_image(OWNER, BytesSource(b"img"), recipe="urn:li:digitalmediaRecipe:custom")

        request = backend.register_request()
        assert request["owner"] == OWNER
        assert request["recipes"] == ["urn:li:digitalmediaRecipe:custom"]
        assert request["supportedUploadMechanism"] == ["SYNCHRONOUS_UPLOAD"]
        assert request["serviceRelationships"][0]["relationshipType"] == "OWNER"

    def test_calls_happen_in_phase_order(self, make_orchestrator):
        backend = FakeAssetsBackend(single_register_value())
        make_orchestrator(backend).upload_image(OWNER, BytesSource(b"img"))
        assert [c["method"] for c in backend.calls] == ["POST", "PUT", "GET"]


class TestVideoUpload:
    def test_small_video_uses_single_request(self, make_orchestrator):
        backend = FakeAssetsBackend(single_register_value())
        orchestrator = make_orchestrator(backend, multipart_threshold=100)

        result = orchestrator.upload_video(OWNER, BytesSource(b"v" * 99))

        assert result.chunk_count == 1
        assert "MULTIPART_UPLOAD" not in str(backend.register_request())
        (put,) = backend.find("PUT")
        assert "Authorization" not in put["headers"]

    def test_chunked_upload_at_threshold(self, make_orchestrator):
        data = bytes(range(10))
        backend = FakeAssetsBackend(multipart_register_value(10, 4))
        orchestrator = make_orchestrator(backend, multipart_threshold=10, chunk_size=4, max_workers=3)

        result = orchestrator.upload_video(OWNER, BytesSource(data))

        request = backend.register_request()
        assert request["supportedUploadMechanism"] == ["MULTIPART_UPLOAD"]
        assert request["fileSize"] == 10

        puts = sorted(backend.find("PUT"), key=lambda c: c["url"])
        assert [c["data"] for c in puts] == [data[0:4], data[4:8], data[8:10]]
        assert result.chunk_count == 3
        assert result.state is UploadState.DONE

        (complete,) = backend.find("POST", "action=completeMultiPartUpload")
        body = json.loads(complete["data"])["completeMultipartUploadRequest"]
        assert body["metadata"] == "upload-token-123"
        assert body["mediaArtifact"].startswith("urn:li:digitalmediaMediaArtifact:")
        assert body["partUploadResponses"] == [
            {"headers": {"ETag": "etag-0"}, "httpStatusCode": 200},
            {"headers": {"ETag": "etag-1"}, "httpStatusCode": 200},
            {"headers": {"ETag": "etag-2"}, "httpStatusCode": 200},
        ]

    def test_finalize_waits_for_every_chunk(self, make_orchestrator):
        backend = FakeAssetsBackend(multipart_register_value(10, 4))
        make_orchestrator(backend, multipart_threshold=1, chunk_size=4).upload_video(OWNER, BytesSource(bytes(10)))

        methods = [c["query"] or c["method"] for c in backend.calls]
        complete_at = methods.index("action=completeMultiPartUpload")
        assert methods[:complete_at].count("PUT") == 3
        assert "PUT" not in methods[complete_at:]

    def test_finalize_waits_for_slow_chunk(self, make_orchestrator):
        backend = FakeAssetsBackend(multipart_register_value(10, 4))
        slow_started = threading.Event()
        release = threading.Event()

        def slow_part_one(method, url, **kwargs):
            if method == "PUT" and url.endswith("/part/1"):
                slow_started.set()
                release.wait(5)
            return backend(method, url, **kwargs)

        orchestrator = make_orchestrator(slow_part_one, multipart_threshold=1, chunk_size=4, max_workers=3)
        results = {}
        worker = threading.Thread(
            target=lambda: results.setdefault("result", orchestrator.upload_video(OWNER, BytesSource(bytes(10))))
        )
        worker.start()
        try:
            assert slow_started.wait(5)
            deadline = time.monotonic() + 5
            while len(backend.find("PUT")) < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert len(backend.find("PUT")) == 2
            assert backend.find("POST", "action=completeMultiPartUpload") == []
        finally:
            release.set()
            worker.join(5)

        assert results["result"].state is UploadState.DONE
        methods = [c["query"] or c["method"] for c in backend.calls]
        assert methods.index("action=completeMultiPartUpload") > max(
            i for i, c in enumerate(backend.calls) if c["url"].endswith("/part/1")
        )

    def test_failed_chunk_blocks_finalize(self, make_orchestrator):
        backend = FakeAssetsBackend(
            multipart_register_value(10, 4),
            part_failures={"https://upload.example.com/part/1": [403]},
        )
        orchestrator = make_orchestrator(backend, multipart_threshold=1, chunk_size=4)

        with pytest.raises(UploadPhaseError) as exc_info:
            orchestrator.upload_video(OWNER, BytesSource(bytes(10)))

        assert exc_info.value.phase is UploadPhase.UPLOAD
        assert exc_info.value.chunk_index == 1
        assert exc_info.value.asset_urn == ASSET
        assert backend.find("POST", "action=completeMultiPartUpload") == []

    def test_server_error_chunk_retried_within_budget(self, make_orchestrator, sleeps):
        backend = FakeAssetsBackend(
            multipart_register_value(10, 4),
            part_failures={"https://upload.example.com/part/2": [503, 502]},
        )
        orchestrator = make_orchestrator(backend, multipart_threshold=1, chunk_size=4)

        result = orchestrator.upload_video(OWNER, BytesSource(bytes(10)))

        assert result.state is UploadState.DONE
        assert len([c for c in backend.find("PUT") if c["url"].endswith("/part/2")]) == 3
        assert len(sleeps) == 2

    def test_chunk_retry_budget_exhausted(self, make_orchestrator):
        backend = FakeAssetsBackend(
            multipart_register_value(10, 4),
            part_failures={"https://upload.example.com/part/0": [500, 500, 500]},
        )
        orchestrator = make_orchestrator(backend, multipart_threshold=1, chunk_size=4, chunk_max_attempts=3)

        with pytest.raises(UploadPhaseError) as exc_info:
            orchestrator.upload_video(OWNER, BytesSource(bytes(10)))

        assert exc_info.value.chunk_index == 0
        assert backend.find("POST", "action=completeMultiPartUpload") == []

    def test_chunk_connection_failures_use_one_retry_budget(self, make_orchestrator):
        backend = FakeAssetsBackend(multipart_register_value(10, 4))
        failing_puts = []

        def refuse_part_zero(method, url, **kwargs):
            if method == "PUT" and url.endswith("/part/0"):
                failing_puts.append(url)
                raise requests.exceptions.ConnectionError("reset")
            return backend(method, url, **kwargs)

        orchestrator = make_orchestrator(refuse_part_zero, multipart_threshold=1, chunk_size=4, max_workers=1)

        with pytest.raises(UploadPhaseError) as exc_info:
            orchestrator.upload_video(OWNER, BytesSource(bytes(10)))

        assert len(failing_puts) == 3
        assert exc_info.value.phase is UploadPhase.UPLOAD
        assert exc_info.value.chunk_index == 0
        assert backend.find("POST", "action=completeMultiPartUpload") == []

    def test_malformed_byte_range(self, make_orchestrator):
        value = multipart_register_value(10, 4)
        del value["uploadMechanism"][MULTIPART_UPLOAD_MECHANISM]["partUploadRequests"][1]["byteRange"]["lastByte"]
        backend = FakeAssetsBackend(value)
        orchestrator = make_orchestrator(backend, multipart_threshold=1, chunk_size=4)

        with pytest.raises(UploadPhaseError, match="Part 1 has an invalid byteRange") as exc_info:
            orchestrator.upload_video(OWNER, BytesSource(bytes(10)))

        assert exc_info.value.phase is UploadPhase.REGISTER
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert backend.find("PUT") == []

    def test_part_layout_must_cover_file(self, make_orchestrator):
        value = multipart_register_value(10, 4)
        value["uploadMechanism"][MULTIPART_UPLOAD_MECHANISM]["partUploadRequests"].pop()
        orchestrator = make_orchestrator(FakeAssetsBackend(value), multipart_threshold=1, chunk_size=4)

        with pytest.raises(UploadPhaseError, match="Invalid part layout") as exc_info:
            orchestrator.upload_video(OWNER, BytesSource(bytes(10)))
        assert exc_info.value.phase is UploadPhase.REGISTER


class TestPolling:
    def test_processing_twice_then_ready(self, make_orchestrator):
        backend = FakeAssetsBackend(
            multipart_register_value(10, 4), poll_statuses=["PROCESSING", "PROCESSING", "AVAILABLE"]
        )
        orchestrator = make_orchestrator(backend, multipart_threshold=1, chunk_size=4)

        result = orchestrator.upload_video(OWNER, BytesSource(bytes(10)), wait=True)

        polls = [c for c in backend.find("GET") if c["query"] == "fields=recipes,id,status"]
        assert len(polls) == 3
        assert result.state is UploadState.DONE
        assert result.confirmed
        assert result.processing_status == "AVAILABLE"

    def test_poll_attempt_limit(self, make_orchestrator):
        backend = FakeAssetsBackend(single_register_value(), poll_statuses=["PROCESSING"] * 5)
        orchestrator = make_orchestrator(backend, poll_max_attempts=2)

        with pytest.raises(PollTimeoutError) as exc_info:
            orchestrator.upload_image(OWNER, BytesSource(b"img"), wait=True)

        assert exc_info.value.attempts == 2
        assert not exc_info.value.cancelled
        assert exc_info.value.asset_urn == ASSET
        assert exc_info.value.last_status == "PROCESSING"

    def test_poll_deadline(self, make_orchestrator):
        backend = FakeAssetsBackend(single_register_value(), poll_statuses=["PROCESSING"] * 5)
        orchestrator = make_orchestrator(backend, poll_interval=1.0, poll_timeout=0.5)

        with pytest.raises(PollTimeoutError) as exc_info:
            orchestrator.upload_image(OWNER, BytesSource(b"img"), wait=True)
        assert exc_info.value.attempts == 1

    def test_cancel_reports_not_confirmed(self, make_orchestrator):
        cancel = threading.Event()
        cancel.set()
        backend = FakeAssetsBackend(single_register_value(), poll_statuses=["PROCESSING"] * 5)
        orchestrator = make_orchestrator(backend, cancel_event=cancel)

        with pytest.raises(PollTimeoutError) as exc_info:
            orchestrator.upload_image(OWNER, BytesSource(b"img"), wait=True)

        assert exc_info.value.cancelled
        assert "still processing, not confirmed" in str(exc_info.value)

    def test_interrupt_during_poll_request(self, make_orchestrator):
        backend = FakeAssetsBackend(single_register_value(), poll_statuses=["PROCESSING"] * 3)
        polls = []

        def interrupt_second_poll(method, url, **kwargs):
            if kwargs.get("raw_query") == "fields=recipes,id,status":
                polls.append(url)
                if len(polls) == 2:
                    raise KeyboardInterrupt
            return backend(method, url, **kwargs)

        orchestrator = make_orchestrator(interrupt_second_poll)

        with pytest.raises(PollTimeoutError) as exc_info:
            orchestrator.upload_image(OWNER, BytesSource(b"img"), wait=True)

        assert exc_info.value.cancelled
        assert exc_info.value.attempts == 2
        assert exc_info.value.last_status == "PROCESSING"
        assert "still processing, not confirmed" in str(exc_info.value)

    def test_processing_failure(self, make_orchestrator):
        backend = FakeAssetsBackend(single_register_value(), poll_statuses=["PROCESSING", "PROCESSING_FAILED"])
        orchestrator = make_orchestrator(backend)

        with pytest.raises(UploadPhaseError) as exc_info:
            orchestrator.upload_image(OWNER, BytesSource(b"img"), wait=True)
        assert exc_info.value.phase is UploadPhase.POLL

    @pytest.mark.parametrize(
        "recipes,expected",
        [
            ([{"status": "AVAILABLE"}, {"status": "AVAILABLE"}], "AVAILABLE"),
            ([{"status": "AVAILABLE"}, {"status": "PROCESSING"}], "PROCESSING"),
            ([{"status": "PROCESSING"}, {"status": "CLIENT_ERROR"}], "CLIENT_ERROR"),
            ([], "UNKNOWN"),
        ],
    )
    def test_processing_status(self, recipes, expected):
        assert AssetUploadOrchestrator.processing_status({"recipes": recipes}) == expected


class TestFailures:
    def test_invalid_owner_fails_before_any_call(self, make_orchestrator, fake_session):
        orchestrator = make_orchestrator(FakeAssetsBackend(single_register_value()))
        with pytest.raises(UploadPhaseError) as exc_info:
            orchestrator.upload_image("organization:1", BytesSource(b"img"))
        assert exc_info.value.phase is UploadPhase.REGISTER
        fake_session.request.assert_not_called()

    def test_empty_file(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeAssetsBackend(single_register_value()))
        with pytest.raises(UploadPhaseError, match="empty file"):
            orchestrator.upload_image(OWNER, BytesSource(b""))

    def test_register_api_error(self, make_orchestrator, fake_session):
        orchestrator = make_orchestrator(FakeAssetsBackend(single_register_value()))
        fake_session.request.side_effect = None
        fake_session.request.return_value = make_response(403, {"message": "Not enough permissions"})

        with pytest.raises(UploadPhaseError) as exc_info:
            orchestrator.upload_image(OWNER, BytesSource(b"img"))

        assert exc_info.value.phase is UploadPhase.REGISTER
        assert exc_info.value.owner_urn == OWNER
        assert exc_info.value.__cause__.status_code == 403

    def test_register_without_mechanism(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeAssetsBackend({"asset": ASSET, "uploadMechanism": {}}))
        with pytest.raises(UploadPhaseError, match="no supported uploadMechanism"):
            orchestrator.upload_image(OWNER, BytesSource(b"img"))

    def test_single_upload_transport_failure(self, make_orchestrator, fake_session):
        backend = FakeAssetsBackend(single_register_value())

        def flaky(method, url, **kwargs):
            if method == "PUT":
                raise requests.exceptions.ConnectionError("reset")
            return backend(method, url, **kwargs)

        orchestrator = make_orchestrator(flaky)
        with pytest.raises(UploadPhaseError) as exc_info:
            orchestrator.upload_image(OWNER, BytesSource(b"img"))

        assert exc_info.value.phase is UploadPhase.UPLOAD
        assert [c["method"] for c in backend.calls] == ["POST"]
