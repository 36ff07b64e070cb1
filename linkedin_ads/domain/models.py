"""Domain models for the LinkedIn Ads CLI.

These models describe catalog operations, Rest.li parameter values,
prepared requests and the asset upload session. Catalog and request
records are frozen dataclasses; the upload session is the only mutable
model and changes state through an explicit transition table.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from loguru import logger

from linkedin_ads.core.constants import ParamLocation, RESTLI_ID_HEADER, UploadPhase
from linkedin_ads.core.exceptions import UploadPhaseError
from linkedin_ads.utils.urn_utils import validate_urn


# ============================================================================
# Catalog records
# ============================================================================


@dataclass(frozen=True)
class ParamDef:
    """A typed parameter exposed as a CLI flag for one operation."""

    name: str
    flag: str
    param_type: str = "string"
    location: ParamLocation = ParamLocation.QUERY
    required: bool = False
    description: str = ""

    @property
    def is_list(self) -> bool:
        return self.param_type.startswith("list<")

    @property
    def item_type(self) -> str:
        """Type of a single value (the element type for list params)."""
        if self.is_list:
            return self.param_type[len("list<"):-1]
        return self.param_type


@dataclass(frozen=True)
class Operation:
    """One resource operation from the catalog.

    Attributes:
        resource: Resource name (e.g. "ad-account")
        name: Operation name (e.g. "get")
        method: HTTP method
        path: Path template with {placeholders}
        params: Typed parameter definitions
        query: Default query parameters, in declaration order
        headers: Default request headers
        returns_id: Whether success carries an x-restli-id header
        description: Help text
    """

    resource: str
    name: str
    method: str
    path: str
    params: Tuple[ParamDef, ...] = ()
    query: Tuple[Tuple[str, str], ...] = ()
    headers: Tuple[Tuple[str, str], ...] = ()
    returns_id: bool = False
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "resource": self.resource,
            "name": self.name,
            "method": self.method,
            "path": self.path,
            "query": dict(self.query),
            "headers": dict(self.headers),
            "returns_id": self.returns_id,
            "description": self.description,
            "params": [
                {
                    "name": p.name,
                    "flag": p.flag,
                    "type": p.param_type,
                    "location": p.location.value,
                    "required": p.required,
                }
                for p in self.params
            ],
        }


# ============================================================================
# Rest.li parameter values (closed sum type)
# ============================================================================


@dataclass(frozen=True)
class Scalar:
    """A string, number or boolean."""

    value: Union[str, int, float, bool]


@dataclass(frozen=True)
class Urn:
    """A validated LinkedIn URN."""

    value: str

    def __post_init__(self):
        validate_urn(self.value)


@dataclass(frozen=True)
class ListOf:
    """A Rest.li List(...) of values, in insertion order."""

    items: Tuple["ParamValue", ...] = ()


@dataclass(frozen=True)
class Complex:
    """A Rest.li record (field:value,...), in supplied field order."""

    fields: Tuple[Tuple[str, "ParamValue"], ...] = ()

    def as_dict(self) -> Dict[str, "ParamValue"]:
        return dict(self.fields)


@dataclass(frozen=True)
class RestliLiteral:
    """A caller-supplied string already in Rest.li structural syntax."""

    text: str


ParamValue = Union[Scalar, Urn, ListOf, Complex, RestliLiteral]


# ============================================================================
# Requests and responses
# ============================================================================


@dataclass(frozen=True)
class RequestPlan:
    """A fully resolved HTTP request, built once and dispatched once.

    Attributes:
        method: HTTP method put on the wire (POST when tunneled)
        url: Absolute URL including the encoded query string, if any
        headers: Request headers (auth and protocol headers included)
        body: Raw request body
        tunneled: Whether the query was moved into a form body
        original_method: Method before tunneling
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    tunneled: bool = False
    original_method: Optional[str] = None

    @property
    def query_string(self) -> str:
        """Encoded query string (empty when tunneled or absent)."""
        _, _, query = self.url.partition("?")
        return query


@dataclass(frozen=True)
class ApiResponse:
    """An HTTP response as seen by the formatter."""

    status: int
    headers: Mapping[str, str]
    body: str = ""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def restli_id(self) -> Optional[str]:
        """Identifier of a newly created entity, when present."""
        return self.header(RESTLI_ID_HEADER)


# ============================================================================
# Asset uploads
# ============================================================================


class MediaKind(Enum):
    """Kinds of uploadable media."""

    IMAGE = "image"
    VIDEO = "video"


class UploadState(Enum):
    """States of the asset upload state machine."""

    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    UPLOADING = "uploading"
    FINALIZING = "finalizing"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES: FrozenSet[UploadState] = frozenset({UploadState.DONE, UploadState.FAILED})

TRANSITIONS: Dict[UploadState, FrozenSet[UploadState]] = {
    UploadState.UNREGISTERED: frozenset({UploadState.REGISTERED, UploadState.FAILED}),
    UploadState.REGISTERED: frozenset({UploadState.UPLOADING, UploadState.FAILED}),
    UploadState.UPLOADING: frozenset({UploadState.FINALIZING, UploadState.FAILED}),
    UploadState.FINALIZING: frozenset({UploadState.POLLING, UploadState.DONE, UploadState.FAILED}),
    UploadState.POLLING: frozenset({UploadState.DONE, UploadState.FAILED}),
    UploadState.DONE: frozenset(),
    UploadState.FAILED: frozenset(),
}

# Phase blamed when a state fails
STATE_PHASES: Dict[UploadState, UploadPhase] = {
    UploadState.UNREGISTERED: UploadPhase.REGISTER,
    UploadState.REGISTERED: UploadPhase.UPLOAD,
    UploadState.UPLOADING: UploadPhase.UPLOAD,
    UploadState.FINALIZING: UploadPhase.FINALIZE,
    UploadState.POLLING: UploadPhase.POLL,
}


@dataclass
class UploadChunk:
    """One contiguous byte range of a chunked upload."""

    index: int
    offset: int
    length: int
    upload_url: str
    headers: Dict[str, str] = field(default_factory=dict)
    etag: Optional[str] = None

    @property
    def last_byte(self) -> int:
        return self.offset + self.length - 1

    @property
    def completed(self) -> bool:
        return self.etag is not None


@dataclass
class UploadSession:
    """State of one asset upload, discarded at process exit."""

    kind: MediaKind
    owner_urn: str
    total_size: int
    state: UploadState = UploadState.UNREGISTERED
    asset_urn: Optional[str] = None
    upload_url: Optional[str] = None
    upload_headers: Dict[str, str] = field(default_factory=dict)
    chunks: List[UploadChunk] = field(default_factory=list)
    upload_token: Optional[str] = None
    media_artifact: Optional[str] = None
    register_response: Dict[str, Any] = field(default_factory=dict)
    finalize_response: Dict[str, Any] = field(default_factory=dict)
    processing_status: Optional[str] = None

    @property
    def chunked(self) -> bool:
        return bool(self.chunks)

    @property
    def completed(self) -> bool:
        return self.state is UploadState.DONE

    @property
    def current_phase(self) -> UploadPhase:
        return STATE_PHASES.get(self.state, UploadPhase.REGISTER)

    def transition(self, new_state: UploadState) -> None:
        """Move to a new state, enforcing the transition table.

        Raises:
            UploadPhaseError: If the transition is not allowed
        """
        if new_state not in TRANSITIONS[self.state]:
            raise UploadPhaseError(
                f"Illegal upload transition {self.state.value} -> {new_state.value}",
                phase=self.current_phase,
                asset_urn=self.asset_urn,
                owner_urn=self.owner_urn,
            )
        logger.debug(f"Upload {self.kind.value}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def pending_chunks(self) -> List[UploadChunk]:
        return [chunk for chunk in self.chunks if not chunk.completed]


@dataclass(frozen=True)
class UploadResult:
    """Outcome reported to the caller after a successful upload."""

    asset_urn: str
    state: UploadState
    chunk_count: int
    confirmed: bool
    register_response: Dict[str, Any] = field(default_factory=dict)
    finalize_response: Dict[str, Any] = field(default_factory=dict)
    processing_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset": self.asset_urn,
            "state": self.state.value,
            "chunks": self.chunk_count,
            "processingConfirmed": self.confirmed,
            "processingStatus": self.processing_status,
            "register": self.register_response,
            "finalize": self.finalize_response,
        }
