"""Rest.li request dispatcher for the LinkedIn Marketing API.

This module turns a resolved operation into a RequestPlan and executes it.

Key Features:
- Protocol headers on every call (Authorization, LinkedIn-Version,
  X-Restli-Protocol-Version)
- Query tunneling: long GET/DELETE URLs become POST with
  X-HTTP-Method-Override and a form-encoded body, decided before sending
- Transport retries with bounded exponential backoff; HTTP error
  responses are never retried and surface as ApiError with the body intact
- Pagination over paging.links rel=next
"""

import json
import time
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import requests
from loguru import logger

from linkedin_ads.adapters.restli_encoder import encode_query
from linkedin_ads.core.config import CLIConfig
from linkedin_ads.core.constants import (
    FORM_CONTENT_TYPE,
    METHOD_OVERRIDE_HEADER,
    QUERY_ONLY_METHODS,
    RETRY_BACKOFF_FACTOR,
    RETRY_BACKOFF_MAX_SECONDS,
    HTTPMethod,
    TunnelMode,
)
from linkedin_ads.core.exceptions import ApiError, EncodingError, TransportError
from linkedin_ads.core.protocols import Transport
from linkedin_ads.domain.models import ApiResponse, ParamValue, RequestPlan
from linkedin_ads.infrastructure.restli_session import RestliSession
from linkedin_ads.utils.decorators import retrybackoffexp

# Connection-level failures worth retrying
TRANSIENT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)

SENSITIVE_HEADERS = {"authorization", "set-cookie", "cookie"}


class RestliClient:
    """Dispatcher for Rest.li requests.

    The client holds only read-only configuration and a shared connection
    pool; it keeps no state between calls.
    """

    def __init__(
        self,
        config: CLIConfig,
        session: Optional[Transport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the dispatcher.

        Args:
            config: Resolved CLI configuration
            session: Transport to use (defaults to a pooled RestliSession)
            sleep: Sleep function used between retries
        """
        self.config = config
        self._session = session or RestliSession(pool_maxsize=max(10, config.upload_workers))
        self._sleep = sleep

        logger.debug(
            f"RestliClient initialized: {config.base_url} "
            f"(LinkedIn-Version {config.linkedin_version}, Rest.li {config.restli_protocol_version})"
        )

    def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            self._session.close()

    # ============================================================================
    # Request planning
    # ============================================================================

    def build_url(self, path: str) -> str:
        """Join a path onto the base URL; absolute URLs pass through."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _build_headers(self, additional_headers: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Build headers with LinkedIn version and Rest.li protocol requirements."""
        headers = {
            "Authorization": f"Bearer {self.config.access_token}",
            "LinkedIn-Version": self.config.linkedin_version,
            "X-Restli-Protocol-Version": self.config.restli_protocol_version,
            "Accept": "application/json",
        }
        if additional_headers:
            headers.update(additional_headers)
        return headers

    def should_tunnel(self, method: str, url: str, tunnel_mode: Optional[TunnelMode] = None) -> bool:
        """Decide whether a request is sent through query tunneling.

        Only query-only methods (GET, DELETE) are tunneled. ALWAYS tunnels
        them regardless of length, even without parameters; AUTO tunnels
        when the full URL is longer than the configured threshold.
        """
        mode = tunnel_mode or self.config.tunnel_mode
        if method not in QUERY_ONLY_METHODS or mode is TunnelMode.NEVER:
            return False
        if mode is TunnelMode.ALWAYS:
            return True
        return len(url) > self.config.tunnel_threshold

    def plan_request(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, ParamValue]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json_body: Any = None,
        tunnel_mode: Optional[TunnelMode] = None,
    ) -> RequestPlan:
        """Build the RequestPlan for one call.

        Args:
            method: HTTP method of the operation
            path: Rendered path or absolute URL
            query: Rest.li query parameters, in order
            headers: Operation-specific headers
            json_body: JSON body for POST/PUT/PATCH
            tunnel_mode: Override of the configured tunnel mode

        Returns:
            Immutable RequestPlan

        Raises:
            EncodingError: If a JSON body is given for a query-only method
        """
        method = method.upper()
        if method not in {m.value for m in HTTPMethod}:
            raise EncodingError(f"Unsupported HTTP method {method}")
        if json_body is not None and method in QUERY_ONLY_METHODS:
            raise EncodingError(f"{method} requests cannot carry a JSON body")

        base_url = self.build_url(path)
        encoded = encode_query(query or {})
        url = f"{base_url}{'&' if '?' in base_url else '?'}{encoded}" if encoded else base_url
        request_headers = self._build_headers(headers)

        if self.should_tunnel(method, url, tunnel_mode):
            # Query tunneling: POST + X-HTTP-Method-Override + form body
            tunneled_base, _, inline_query = base_url.partition("?")
            form_body = "&".join(part for part in (inline_query, encoded) if part)
            request_headers[METHOD_OVERRIDE_HEADER] = method
            request_headers["Content-Type"] = FORM_CONTENT_TYPE
            logger.debug(f"Tunneling {method} {tunneled_base} ({len(url)} chars) as POST")
            return RequestPlan(
                method=HTTPMethod.POST.value,
                url=tunneled_base,
                headers=request_headers,
                body=form_body.encode("utf-8"),
                tunneled=True,
                original_method=method,
            )

        body = None
        if json_body is not None:
            body = json.dumps(json_body).encode("utf-8")
            request_headers.setdefault("Content-Type", "application/json")

        return RequestPlan(
            method=method,
            url=url,
            headers=request_headers,
            body=body,
            tunneled=False,
            original_method=method,
        )

    # ============================================================================
    # Execution
    # ============================================================================

    def execute(self, plan: RequestPlan, max_tries: Optional[int] = None) -> ApiResponse:
        """Send a RequestPlan, retrying transport failures only.

        Args:
            plan: Request to send
            max_tries: Attempt budget; defaults to the configured max_retries

        Returns:
            ApiResponse for 2xx responses

        Raises:
            TransportError: If every attempt failed at the connection level
            ApiError: For any non-2xx response (never retried)
        """
        tries = max_tries or self.config.max_retries
        send = retrybackoffexp(
            max_tries=tries,
            base_secs=RETRY_BACKOFF_FACTOR,
            max_secs=RETRY_BACKOFF_MAX_SECONDS,
            retry_on=TRANSIENT_ERRORS,
            sleep=self._sleep,
        )(self._send_once)

        try:
            response = send(plan)
        except TRANSIENT_ERRORS as e:
            raise TransportError(
                f"{plan.method} {self._loggable_url(plan.url)} failed: {e.__class__.__name__}",
                attempts=tries,
                details={"error": str(e)},
            ) from e

        api_response = ApiResponse(
            status=response.status_code,
            headers=self._sanitize_headers(response.headers),
            body=response.text or "",
        )

        if not 200 <= api_response.status < 300:
            raise ApiError(
                self._error_message(api_response),
                status_code=api_response.status,
                response_body=api_response.body,
                headers=dict(api_response.headers),
                method=plan.original_method or plan.method,
                url=self._loggable_url(plan.url),
            )

        if api_response.restli_id:
            logger.debug(f"x-restli-id: {api_response.restli_id}")
        return api_response

    def _send_once(self, plan: RequestPlan):
        base_url, _, raw_query = plan.url.partition("?")
        logger.debug(f"{plan.method} {self._loggable_url(plan.url)}")
        response = self._session.request(
            method=plan.method,
            url=base_url,
            raw_query=raw_query or None,
            data=plan.body,
            headers=plan.headers,
            timeout=self.config.timeout,
        )
        logger.debug(f"{plan.method} {base_url} -> HTTP {response.status_code}")
        return response

    def call(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, ParamValue]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json_body: Any = None,
    ) -> ApiResponse:
        """Plan and execute one Rest.li call."""
        return self.execute(self.plan_request(method, path, query, headers, json_body))

    def put_bytes(
        self,
        url: str,
        data: bytes,
        headers: Optional[Mapping[str, str]] = None,
        include_auth: bool = False,
        max_tries: Optional[int] = None,
    ) -> ApiResponse:
        """Upload raw bytes to a (usually pre-signed) upload URL.

        Args:
            url: Absolute upload URL, used verbatim
            data: Bytes to upload
            headers: Headers issued by the register response
            include_auth: Send the bearer token along (image uploads)
            max_tries: Attempt budget passed to execute
        """
        request_headers = {
            "Content-Type": "application/octet-stream",
            "Accept": "application/json",
        }
        if include_auth:
            request_headers["Authorization"] = f"Bearer {self.config.access_token}"
        request_headers.update(headers or {})

        plan = RequestPlan(
            method=HTTPMethod.PUT.value,
            url=url,
            headers=request_headers,
            body=data,
            original_method=HTTPMethod.PUT.value,
        )
        return self.execute(plan, max_tries=max_tries)

    # ============================================================================
    # Pagination
    # ============================================================================

    def fetch_all_pages(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, ParamValue]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json_body: Any = None,
        max_pages: int = 0,
        max_items: int = 0,
    ) -> ApiResponse:
        """Follow paging.links rel=next and concatenate elements.

        Args:
            max_pages: Stop after this many pages (0 = no limit)
            max_items: Stop after this many elements (0 = no limit)

        Returns:
            The last page's response with body {"elements": [...]}
        """
        response = self.call(method, path, query, headers, json_body)
        items: List[Any] = []
        pages = 1

        while True:
            page = self._parse_json(response.body)
            elements = page.get("elements") if isinstance(page, dict) else None
            if not isinstance(elements, list):
                break

            for element in elements:
                items.append(element)
                if max_items and len(items) >= max_items:
                    return self._with_elements(response, items)

            next_href = self.next_link_href(page)
            if not next_href:
                break
            if max_pages and pages >= max_pages:
                break
            pages += 1
            logger.debug(f"Fetching page {pages}: {next_href}")
            response = self.call(HTTPMethod.GET.value, self.resolve_href(next_href), headers=headers)

        return self._with_elements(response, items)

    @staticmethod
    def next_link_href(body: Any) -> Optional[str]:
        """Return the href of the rel=next paging link, if any."""
        if not isinstance(body, dict):
            return None
        links = (body.get("paging") or {}).get("links") or []
        for link in links:
            if isinstance(link, dict) and link.get("rel") == "next" and link.get("href"):
                return link["href"]
        return None

    def resolve_href(self, href: str) -> str:
        """Resolve a paging href against the base URL.

        Hrefs may be absolute, include the base path (/rest/...), or be
        relative to it.
        """
        if href.startswith("http://") or href.startswith("https://"):
            return href
        base = urlparse(self.config.base_url)
        base_path = base.path.rstrip("/")
        if base_path and href.startswith(base_path + "/"):
            return f"{base.scheme}://{base.netloc}{href}"
        return self.build_url(href)

    @staticmethod
    def _with_elements(response: ApiResponse, items: List[Any]) -> ApiResponse:
        return ApiResponse(
            status=response.status,
            headers=response.headers,
            body=json.dumps({"elements": items}),
        )

    # ============================================================================
    # Helpers
    # ============================================================================

    @staticmethod
    def _parse_json(text: str) -> Any:
        if not text or not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            return None

    def _error_message(self, response: ApiResponse) -> str:
        payload = self._parse_json(response.body)
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return "HTTP error"

    @staticmethod
    def _sanitize_headers(headers: Mapping[str, str]) -> Dict[str, str]:
        """Copy response headers, dropping credentials."""
        return {
            key: value for key, value in headers.items() if key.lower() not in SENSITIVE_HEADERS
        }

    @staticmethod
    def _loggable_url(url: str) -> str:
        """Shorten very long URLs for logs and error messages."""
        if len(url) > 300:
            return f"{url[:300]}...({len(url)} chars)"
        return url
