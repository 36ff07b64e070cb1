"""Turns a catalog operation plus CLI input into request parts.

Path placeholders are filled and URL-encoded, --params is routed to the
query (GET/DELETE) or the JSON body (POST/PUT/PATCH), and typed flags are
placed where the catalog says. All validation happens here, before any
network call.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from linkedin_ads.adapters.restli_encoder import params_from_json, to_param_value
from linkedin_ads.core.constants import QUERY_ONLY_METHODS, ParamLocation
from linkedin_ads.core.exceptions import EncodingError
from linkedin_ads.domain.models import Operation, ParamValue, RestliLiteral
from linkedin_ads.utils.urn_utils import validate_urn

PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class BuiltRequest:
    """Request parts ready for RestliClient.plan_request."""

    method: str
    path: str
    query: Dict[str, ParamValue] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Any] = None


def parse_json_object(raw: Optional[str], flag: str = "--params") -> Optional[Dict[str, Any]]:
    """Parse a JSON object given on the command line.

    Raises:
        EncodingError: If the text is not valid JSON or not an object
    """
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except ValueError as e:
        raise EncodingError(f"Invalid JSON for {flag}", details={"error": str(e)})
    if not isinstance(value, dict):
        raise EncodingError(f"{flag} must be a JSON object")
    return value


def render_path(
    template: str,
    resource_id: Optional[str] = None,
    path_params: Optional[Mapping[str, str]] = None,
) -> str:
    """Fill {placeholders} in a path template, URL-encoding each value.

    Examples:
        >>> render_path("/adAccounts/{id}", "123")
        '/adAccounts/123'
        >>> render_path("/adAccounts/{id}/creatives/{creative_urn}", "1",
        ...             {"creative_urn": "urn:li:sponsoredCreative:9"})
        '/adAccounts/1/creatives/urn%3Ali%3AsponsoredCreative%3A9'

    Raises:
        EncodingError: If a placeholder has no value
    """
    values = dict(path_params or {})
    if resource_id is not None:
        values["id"] = resource_id

    def substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = values.get(name)
        if value is None or str(value) == "":
            flag = "--id" if name == "id" else f"--{name.replace('_', '-')}"
            raise EncodingError(f"Missing path parameter for {template}: {flag} required", param=name)
        return quote(str(value), safe="")

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def build_request(
    op: Operation,
    resource_id: Optional[str] = None,
    params_json: Optional[str] = None,
    flag_values: Optional[Mapping[str, Any]] = None,
    fields: Optional[str] = None,
) -> BuiltRequest:
    """Build request parts for a catalog operation.

    Args:
        op: Operation from the catalog
        resource_id: Value for the {id} placeholder
        params_json: Raw --params JSON object
        flag_values: Values of typed param flags, keyed by param name
        fields: Rest.li field projection (--fields/--select)

    Returns:
        BuiltRequest

    Raises:
        EncodingError: On invalid JSON, malformed URNs or missing params
    """
    method = op.method.upper()
    query: Dict[str, ParamValue] = {
        key: to_param_value(value, name=key) for key, value in op.query
    }
    headers: Dict[str, str] = dict(op.headers)
    body: Optional[Any] = None

    params = parse_json_object(params_json)
    if params is not None:
        if method in QUERY_ONLY_METHODS:
            param_types = {p.name: p.param_type for p in op.params}
            query.update(params_from_json(params, param_types))
        else:
            body = params

    path_params: Dict[str, str] = {}
    flag_values = flag_values or {}
    for param in op.params:
        value = flag_values.get(param.name)
        if value is None:
            if param.required and not _supplied_elsewhere(param.name, param.location, query, body):
                raise EncodingError(
                    f"{op.resource} {op.name} requires --{param.flag}", param=param.name
                )
            continue

        if param.location is ParamLocation.PATH:
            if param.param_type == "urn":
                validate_urn(str(value))
            path_params[param.name] = str(value)
        elif param.location is ParamLocation.QUERY:
            query[param.name] = to_param_value(value, param.param_type, name=param.name)
        elif param.location is ParamLocation.HEADER:
            headers[param.name] = str(value)
        elif param.location is ParamLocation.BODY:
            if body is None:
                body = {}
            if not isinstance(body, dict):
                raise EncodingError("--params must be a JSON object to set body fields")
            body[param.name] = value

    if fields:
        query["fields"] = RestliLiteral(fields)

    path = render_path(op.path, resource_id, path_params)
    return BuiltRequest(method=method, path=path, query=query, headers=headers, body=body)


def _supplied_elsewhere(
    name: str,
    location: ParamLocation,
    query: Mapping[str, ParamValue],
    body: Optional[Any],
) -> bool:
    """A required flag may also be given through --params."""
    if location is ParamLocation.QUERY:
        return name in query
    if location is ParamLocation.BODY:
        return isinstance(body, dict) and name in body
    return False
