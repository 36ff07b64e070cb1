"""Response and error rendering.

Pure functions from an HTTP result and an output mode to the text the
CLI prints. Nothing here performs I/O.
"""

import json
from typing import Any, Optional

from linkedin_ads.core.constants import OutputMode
from linkedin_ads.core.exceptions import ApiError, LinkedInAdsError
from linkedin_ads.domain.models import ApiResponse


def format_response(response: ApiResponse, mode: OutputMode, unwrap: bool = False) -> str:
    """Render a response for the given output mode.

    - RAW: status line, headers and the body exactly as received
    - PRETTY: indented JSON
    - JSON: compact JSON

    PRETTY and JSON fall back to the raw body text when it is not JSON.
    In those modes the x-restli-id header is promoted into the output as
    "id" when the body is empty or an object without one.

    Args:
        response: HTTP response
        mode: Output mode
        unwrap: Render `elements` or `value` instead of the full envelope

    Returns:
        Text to print (may be empty, e.g. for 204 responses)
    """
    if mode is OutputMode.RAW:
        return format_raw(response)

    body = response.body or ""
    if body.strip():
        try:
            payload: Any = json.loads(body)
        except ValueError:
            return body
    else:
        payload = None

    if unwrap:
        payload = unwrap_body(payload)

    restli_id = response.restli_id
    if restli_id:
        if payload is None:
            payload = {"id": restli_id}
        elif isinstance(payload, dict):
            payload.setdefault("id", restli_id)

    if payload is None:
        return ""
    return format_payload(payload, mode)


def format_raw(response: ApiResponse) -> str:
    """Status line, headers and the body verbatim."""
    lines = [f"HTTP {response.status}"]
    lines.extend(f"{name}: {value}" for name, value in response.headers.items())
    return "\n".join(lines) + "\n\n" + (response.body or "")


def format_payload(payload: Any, mode: OutputMode) -> str:
    """Serialize an already-parsed payload (upload results, discovery output)."""
    if mode is OutputMode.PRETTY:
        return json.dumps(payload, indent=2, ensure_ascii=False)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def unwrap_body(payload: Any) -> Any:
    """Return the collection `elements` or the action `value`, else the payload."""
    if isinstance(payload, dict):
        if "elements" in payload:
            return payload["elements"]
        if "value" in payload:
            return payload["value"]
    return payload


def render_error(error: BaseException, mode: Optional[OutputMode] = None) -> str:
    """Human-readable error summary for stderr.

    API errors keep the upstream body intact; in PRETTY mode a JSON body
    is re-indented for readability.
    """
    if isinstance(error, ApiError) and mode is OutputMode.PRETTY and error.response_body:
        try:
            body = json.dumps(json.loads(error.response_body), indent=2, ensure_ascii=False)
        except ValueError:
            body = error.response_body
        return f"error: [HTTP {error.status_code}] {error.message}\n{body}"
    if isinstance(error, LinkedInAdsError):
        return f"error: {error}"
    return f"error: {error.__class__.__name__}: {error}"
