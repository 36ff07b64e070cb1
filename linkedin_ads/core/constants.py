"""Constants and enumerations for the LinkedIn Ads CLI.

This module centralizes all magic strings, numbers, and enumerations
to improve maintainability and avoid duplication.
"""

from enum import Enum, IntEnum
from typing import Final, FrozenSet


# API constants
DEFAULT_BASE_URL: Final[str] = "https://api.linkedin.com/rest"
LINKEDIN_API_VERSION: Final[str] = "202509"
RESTLI_PROTOCOL_VERSION: Final[str] = "2.0.0"
USER_AGENT: Final[str] = "linkedin-ads-cli/0.1.0"
REQUEST_TIMEOUT_SECONDS: Final[int] = 30
MAX_RETRIES: Final[int] = 3
RETRY_BACKOFF_FACTOR: Final[float] = 0.5
RETRY_BACKOFF_MAX_SECONDS: Final[float] = 8.0

# Query tunneling: GET URLs longer than this are sent as POST
TUNNEL_URL_THRESHOLD: Final[int] = 3800
METHOD_OVERRIDE_HEADER: Final[str] = "X-HTTP-Method-Override"
FORM_CONTENT_TYPE: Final[str] = "application/x-www-form-urlencoded"
RESTLI_ID_HEADER: Final[str] = "x-restli-id"

# Parameters carrying Rest.li field projections are sent verbatim
PROJECTION_PARAMS: Final[FrozenSet[str]] = frozenset({"fields"})

# Asset upload constants
ASSETS_PATH: Final[str] = "/assets"
DEFAULT_IMAGE_RECIPE: Final[str] = "urn:li:digitalmediaRecipe:companyUpdate-article-image"
DEFAULT_VIDEO_RECIPE: Final[str] = "urn:li:digitalmediaRecipe:ads-video_v2"
SINGLE_UPLOAD_MECHANISM: Final[str] = "com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"
MULTIPART_UPLOAD_MECHANISM: Final[str] = "com.linkedin.digitalmedia.uploading.MultipartUpload"
VIDEO_MULTIPART_THRESHOLD_BYTES: Final[int] = 200 * 1024 * 1024
UPLOAD_CHUNK_SIZE_BYTES: Final[int] = 4 * 1024 * 1024
UPLOAD_MAX_WORKERS: Final[int] = 4
UPLOAD_CHUNK_MAX_ATTEMPTS: Final[int] = 3

# Asset processing polling
POLL_INTERVAL_SECONDS: Final[float] = 3.0
POLL_TIMEOUT_SECONDS: Final[float] = 300.0
POLL_FIELDS: Final[str] = "recipes,id,status"
ASSET_READY_STATUS: Final[str] = "AVAILABLE"
ASSET_FAILED_STATUSES: Final[FrozenSet[str]] = frozenset(
    {"PROCESSING_FAILED", "CLIENT_ERROR", "FAILED", "REJECTED"}
)

# Environment variable names
ENV_ACCESS_TOKEN: Final[str] = "LINKEDIN_ACCESS_TOKEN"
ENV_LINKEDIN_VERSION: Final[str] = "LINKEDIN_VERSION"
ENV_BASE_URL: Final[str] = "LINKEDIN_BASE_URL"
ENV_RESTLI_PROTOCOL_VERSION: Final[str] = "LINKEDIN_RESTLI_PROTOCOL_VERSION"
ENV_AD_ACCOUNT_ID: Final[str] = "LINKEDIN_AD_ACCOUNT_ID"
ENV_ASSET_ID: Final[str] = "LINKEDIN_ASSET_ID"
ENV_TIMEOUT: Final[str] = "LINKEDIN_TIMEOUT"
ENV_TUNNEL_THRESHOLD: Final[str] = "LINKEDIN_TUNNEL_THRESHOLD"
ENV_MAX_RETRIES: Final[str] = "LINKEDIN_MAX_RETRIES"
ENV_UPLOAD_WORKERS: Final[str] = "LINKEDIN_UPLOAD_WORKERS"

# Logging configuration
LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
LOG_LEVEL_DEFAULT: Final[str] = "WARNING"
LOG_LEVEL_DEBUG: Final[str] = "DEBUG"


class HTTPMethod(Enum):
    """HTTP request methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


# Methods whose parameters travel in the query string and may be tunneled
QUERY_ONLY_METHODS: Final[FrozenSet[str]] = frozenset(
    {HTTPMethod.GET.value, HTTPMethod.DELETE.value}
)


class TunnelMode(Enum):
    """Query tunneling modes for long GET requests."""

    AUTO = "auto"        # Tunnel only when the URL exceeds the threshold
    ALWAYS = "always"    # Tunnel every query-only request
    NEVER = "never"      # Never tunnel


class OutputMode(Enum):
    """Response rendering modes."""

    RAW = "raw"          # Status line + headers + body verbatim
    PRETTY = "pretty"    # Indented JSON
    JSON = "json"        # Compact JSON


class ParamLocation(Enum):
    """Where a catalog parameter is placed in the request."""

    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"


class ExitCode(IntEnum):
    """Process exit codes."""

    OK = 0
    FAILURE = 1
    INVALID_INPUT = 2
    API_ERROR = 3
    TRANSPORT_ERROR = 4
    UPLOAD_FAILED = 5
    OUTCOME_UNKNOWN = 6
    INTERRUPTED = 130


class UploadPhase(Enum):
    """Phases of the asset upload pipeline, used to tag failures."""

    REGISTER = "register"
    UPLOAD = "upload"
    FINALIZE = "finalize"
    POLL = "poll"
