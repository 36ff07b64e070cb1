"""Rest.li 2.0 query encoding.

LinkedIn's Rest.li APIs do not accept ordinary form encoding for
structured parameters. Values use a structural literal grammar:

- lists:   List(urn%3Ali%3AsponsoredCampaign%3A123,urn%3Ali%3A...)
- records: (start:(year:2024,month:1,day:1))
- strings: percent-encoded with every reserved character escaped, so
           the structural characters ( ) , : ' only ever appear
           unescaped where the encoder itself emitted them
- empty string: ''

Callers hand in JSON-like values, which are converted into the closed
ParamValue sum type (Scalar, Urn, ListOf, Complex, RestliLiteral) and
then encoded. decode_query/decode_value parse the same grammar back.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from linkedin_ads.core.constants import PROJECTION_PARAMS
from linkedin_ads.core.exceptions import EncodingError
from linkedin_ads.domain.models import (
    Complex,
    ListOf,
    ParamValue,
    RestliLiteral,
    Scalar,
    Urn,
)
from linkedin_ads.utils.urn_utils import is_urn

LIST_PREFIX = "List("
EMPTY_STRING = "''"

# Characters kept as-is inside caller-supplied literals: Rest.li structure,
# existing percent escapes and URN punctuation. Anything that would break
# the surrounding query string (space, &, =, #, +, ?) is still escaped.
LITERAL_SAFE = "():,'%!*@/;$-._~"


# ============================================================================
# JSON -> ParamValue
# ============================================================================


def is_restli_literal(text: str) -> bool:
    """Return True if text is one balanced Rest.li List(...) or (...) expression.

    Examples:
        >>> is_restli_literal("List(ACTIVE,PAUSED)")
        True
        >>> is_restli_literal("(start:(year:2024,month:1,day:1))")
        True
        >>> is_restli_literal("(a)(b)")
        False
    """
    if text.startswith(LIST_PREFIX):
        body_start = len(LIST_PREFIX) - 1
    elif text.startswith("("):
        body_start = 0
    else:
        return False
    if not text.endswith(")"):
        return False

    depth = 0
    for position in range(body_start, len(text)):
        char = text[position]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return False
            # The opening paren must close exactly at the end
            if depth == 0 and position != len(text) - 1:
                return False
    return depth == 0


def to_param_value(value: Any, param_type: Optional[str] = None, name: Optional[str] = None) -> ParamValue:
    """Convert a JSON-like value into a ParamValue.

    Args:
        value: str, int, float, bool, list or dict (nested freely)
        param_type: Catalog type hint ("urn", "list<urn>", "string", ...)
        name: Parameter name, for error messages

    Returns:
        ParamValue variant

    Raises:
        EncodingError: For malformed URNs or unsupported value types
    """
    try:
        return _to_param_value(value, param_type)
    except EncodingError as e:
        if e.param is None and name is not None:
            raise EncodingError(e.message, param=name, details=e.details) from None
        raise


def _to_param_value(value: Any, param_type: Optional[str]) -> ParamValue:
    item_type = None
    if param_type and param_type.startswith("list<") and param_type.endswith(">"):
        item_type = param_type[len("list<"):-1]

    if isinstance(value, bool):
        return Scalar(value)
    if isinstance(value, (int, float)):
        return Scalar(value)
    if isinstance(value, str):
        if item_type:
            if is_restli_literal(value):
                return RestliLiteral(value)
            # Flag values like --campaigns a,b arrive as one string
            return ListOf(tuple(_to_param_value(v.strip(), item_type) for v in value.split(",")))
        if param_type == "urn" or is_urn(value):
            return Urn(value)
        if is_restli_literal(value):
            return RestliLiteral(value)
        return Scalar(value)
    if isinstance(value, (list, tuple)):
        return ListOf(tuple(_to_param_value(item, item_type) for item in value))
    if isinstance(value, dict):
        return Complex(tuple((str(k), _to_param_value(v, None)) for k, v in value.items()))
    raise EncodingError(
        f"Unsupported parameter value of type {type(value).__name__}",
        details={"value": repr(value)},
    )


def params_from_json(
    params: Mapping[str, Any],
    param_types: Optional[Mapping[str, str]] = None,
) -> Dict[str, ParamValue]:
    """Convert a mapping of JSON values into ParamValues, keeping key order.

    Null values are dropped. Projection parameters (fields) are Rest.li
    syntax by definition and pass through as literals.
    """
    param_types = param_types or {}
    converted: Dict[str, ParamValue] = {}
    for key, value in params.items():
        if value is None:
            continue
        if key in PROJECTION_PARAMS and isinstance(value, str):
            converted[key] = RestliLiteral(value)
        elif key in PROJECTION_PARAMS and isinstance(value, list):
            converted[key] = RestliLiteral(",".join(str(v) for v in value))
        else:
            converted[key] = to_param_value(value, param_types.get(key), name=key)
    return converted


# ============================================================================
# ParamValue -> Rest.li text
# ============================================================================


def encode_string(text: str) -> str:
    """Percent-encode a string leaf using Rest.li's reduced encoding.

    Examples:
        >>> encode_string("urn:li:sponsoredAccount:123")
        'urn%3Ali%3AsponsoredAccount%3A123'
        >>> encode_string("hello world")
        'hello%20world'
        >>> encode_string("")
        "''"
    """
    if text == "":
        return EMPTY_STRING
    return quote(text, safe="")


def encode_value(value: ParamValue) -> str:
    """Encode a ParamValue into Rest.li query syntax."""
    if isinstance(value, Scalar):
        raw = value.value
        if isinstance(raw, bool):
            return "true" if raw else "false"
        if isinstance(raw, (int, float)):
            return encode_string(repr(raw) if isinstance(raw, float) else str(raw))
        return encode_string(raw)
    if isinstance(value, Urn):
        return encode_string(value.value)
    if isinstance(value, ListOf):
        return LIST_PREFIX + ",".join(encode_value(item) for item in value.items) + ")"
    if isinstance(value, Complex):
        return "(" + ",".join(
            f"{encode_string(key)}:{encode_value(item)}" for key, item in value.fields
        ) + ")"
    if isinstance(value, RestliLiteral):
        return quote(value.text, safe=LITERAL_SAFE)
    raise EncodingError(f"Unknown parameter value variant: {type(value).__name__}")


def encode_query(params: Mapping[str, ParamValue]) -> str:
    """Encode parameters into a query string, without the leading '?'.

    An empty mapping produces an empty string.

    Examples:
        >>> encode_query({"q": Scalar("search")})
        'q=search'
        >>> encode_query({})
        ''
    """
    return "&".join(
        f"{encode_string(name)}={encode_value(value)}" for name, value in params.items()
    )


# ============================================================================
# Rest.li text -> ParamValue
# ============================================================================


def decode_query(query: str) -> Dict[str, ParamValue]:
    """Parse an encoded Rest.li query string back into ParamValues.

    Scalars come back as strings; values starting with urn:li: come back
    as Urn.

    Raises:
        EncodingError: If the query is not valid Rest.li syntax
    """
    decoded: Dict[str, ParamValue] = {}
    if not query:
        return decoded
    for pair in query.split("&"):
        if not pair:
            continue
        name, separator, raw_value = pair.partition("=")
        if not separator:
            raise EncodingError(f"Query parameter without value: {pair!r}")
        decoded[unquote(name)] = decode_value(raw_value)
    return decoded


def decode_value(text: str) -> ParamValue:
    """Parse one encoded Rest.li value.

    Raises:
        EncodingError: If text is not valid Rest.li syntax
    """
    value, position = _parse(text, 0)
    if position != len(text):
        raise EncodingError(
            f"Unexpected trailing characters in Rest.li value at {position}",
            details={"value": text},
        )
    return value


def _parse(text: str, position: int) -> Tuple[ParamValue, int]:
    if text.startswith(LIST_PREFIX, position):
        return _parse_list(text, position + len(LIST_PREFIX))
    if text.startswith("(", position):
        return _parse_record(text, position + 1)
    return _parse_leaf(text, position)


def _parse_list(text: str, position: int) -> Tuple[ListOf, int]:
    items: List[ParamValue] = []
    if text.startswith(")", position):
        return ListOf(()), position + 1
    while True:
        item, position = _parse(text, position)
        items.append(item)
        position = _expect_separator(text, position)
        if text[position - 1] == ")":
            return ListOf(tuple(items)), position


def _parse_record(text: str, position: int) -> Tuple[Complex, int]:
    fields: List[Tuple[str, ParamValue]] = []
    if text.startswith(")", position):
        return Complex(()), position + 1
    while True:
        colon = text.find(":", position)
        if colon == -1:
            raise EncodingError("Record field without ':'", details={"value": text})
        key = _decode_leaf_text(text[position:colon])
        item, position = _parse(text, colon + 1)
        fields.append((key, item))
        position = _expect_separator(text, position)
        if text[position - 1] == ")":
            return Complex(tuple(fields)), position


def _expect_separator(text: str, position: int) -> int:
    if position >= len(text) or text[position] not in ",)":
        raise EncodingError(
            f"Expected ',' or ')' at position {position}",
            details={"value": text},
        )
    return position + 1


def _parse_leaf(text: str, position: int) -> Tuple[ParamValue, int]:
    end = position
    while end < len(text) and text[end] not in ",()":
        end += 1
    leaf = _decode_leaf_text(text[position:end])
    if is_urn(leaf):
        return Urn(leaf), end
    return Scalar(leaf), end


def _decode_leaf_text(raw: str) -> str:
    if raw == EMPTY_STRING:
        return ""
    return unquote(raw)
