"""Custom exception hierarchy for the LinkedIn Ads CLI.

Every failure that can end an invocation maps to one of these classes,
which in turn maps to a process exit code in the CLI entry point.
"""

from typing import Optional, Dict, Any

from linkedin_ads.core.constants import UploadPhase


class LinkedInAdsError(Exception):
    """Base exception for all LinkedIn Ads CLI errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(LinkedInAdsError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Missing access token
        - Base URL that is not an http(s) URL
        - Unknown resource or operation in the catalog
    """

    pass


class EncodingError(LinkedInAdsError):
    """Raised when parameters cannot be encoded into a Rest.li request.

    Always raised before any network call is made.

    Examples:
        - Malformed URN
        - --params that is not valid JSON or not a JSON object
        - Missing path parameter
    """

    def __init__(
        self,
        message: str,
        param: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.param = param

    def __str__(self) -> str:
        base = self.message
        if self.param:
            base = f"{base} (param: {self.param})"
        if self.details:
            base = f"{base}\nDetails: {self.details}"
        return base


class TransportError(LinkedInAdsError):
    """Raised when a connection-level failure persists after all retries.

    Examples:
        - Connection reset
        - Read or connect timeout
    """

    def __init__(
        self,
        message: str,
        attempts: int = 1,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.attempts = attempts

    def __str__(self) -> str:
        base = f"{self.message} (after {self.attempts} attempt(s))"
        if self.details:
            base = f"{base}\nDetails: {self.details}"
        return base


class ApiError(LinkedInAdsError):
    """Raised for non-2xx HTTP responses.

    The response body is kept intact: the upstream error payload is the
    authoritative diagnosis and is rendered in full.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        response_body: str = "",
        headers: Optional[Dict[str, str]] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize API error with HTTP details.

        Args:
            message: Human-readable error message
            status_code: HTTP status code
            response_body: Raw response body, untruncated
            headers: Response headers
            method: HTTP method of the failed request
            url: Request URL
            details: Optional additional context
        """
        super().__init__(message, details)
        self.status_code = status_code
        self.response_body = response_body
        self.headers = headers or {}
        self.method = method
        self.url = url

    def __str__(self) -> str:
        """Return string representation including HTTP status."""
        base = f"[HTTP {self.status_code}] {self.message}"
        if self.method and self.url:
            base = f"{base} ({self.method} {self.url})"
        if self.response_body:
            base = f"{base}\nResponse: {self.response_body}"
        if self.details:
            base = f"{base}\nDetails: {self.details}"
        return base


class UploadPhaseError(LinkedInAdsError):
    """Raised when a step of the asset upload pipeline fails.

    Tagged with the failed phase and, for chunk failures, the chunk index.
    """

    def __init__(
        self,
        message: str,
        phase: UploadPhase,
        chunk_index: Optional[int] = None,
        asset_urn: Optional[str] = None,
        owner_urn: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize upload error with pipeline context.

        Args:
            message: Human-readable error message
            phase: Upload phase that failed
            chunk_index: Index of the failed chunk, for chunk failures
            asset_urn: Asset being uploaded, when already registered
            owner_urn: Media owner URN
            details: Optional additional context
        """
        super().__init__(message, details)
        self.phase = phase
        self.chunk_index = chunk_index
        self.asset_urn = asset_urn
        self.owner_urn = owner_urn

    def __str__(self) -> str:
        base = f"[{self.phase.value}] {self.message}"
        if self.chunk_index is not None:
            base = f"{base} (chunk: {self.chunk_index})"
        if self.asset_urn:
            base = f"{base} (asset: {self.asset_urn})"
        if self.owner_urn:
            base = f"{base} (owner: {self.owner_urn})"
        if self.details:
            base = f"{base}\nDetails: {self.details}"
        return base


class PollTimeoutError(LinkedInAdsError):
    """Raised when asset processing is not confirmed in time.

    Unlike UploadPhaseError this is an unknown outcome: the asset was
    uploaded and finalized and may still finish processing later.
    """

    def __init__(
        self,
        message: str,
        asset_urn: str,
        attempts: int = 0,
        cancelled: bool = False,
        last_status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.asset_urn = asset_urn
        self.attempts = attempts
        self.cancelled = cancelled
        self.last_status = last_status

    def __str__(self) -> str:
        reason = "cancelled" if self.cancelled else "timed out"
        base = (
            f"{self.message}: asset {self.asset_urn} still processing, not confirmed "
            f"({reason} after {self.attempts} poll(s)"
        )
        if self.last_status:
            base = f"{base}, last status: {self.last_status}"
        return f"{base})"


class FileSourceError(LinkedInAdsError):
    """Raised when a file reference cannot be resolved to readable bytes.

    Examples:
        - Local file not found
        - Download of an http(s):// or s3:// reference failed
    """

    def __init__(
        self,
        message: str,
        reference: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.reference = reference

    def __str__(self) -> str:
        base = self.message
        if self.reference:
            base = f"{base} (file: {self.reference})"
        if self.details:
            base = f"{base}\nDetails: {self.details}"
        return base
