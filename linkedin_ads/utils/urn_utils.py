"""URN utility functions for LinkedIn API."""
import re
from typing import Optional, Tuple

from linkedin_ads.core.exceptions import EncodingError

URN_PREFIX = "urn:li:"

# urn:li:<entityType>:<id>, where <id> may itself be a nested tuple "(...)"
URN_PATTERN = re.compile(r"^urn:li:([A-Za-z][A-Za-z0-9_]*):(\S+)$")


def is_urn(value: object) -> bool:
    """Return True if value looks like a LinkedIn URN (prefix check only)."""
    return isinstance(value, str) and value.startswith(URN_PREFIX)


def parse_urn(urn: str) -> Tuple[str, str]:
    """
    Split a LinkedIn URN into entity type and id.

    Args:
        urn: LinkedIn URN (e.g., "urn:li:sponsoredCampaign:12345")

    Returns:
        Tuple of (entity_type, entity_id)

    Raises:
        EncodingError: If the URN is malformed

    Examples:
        >>> parse_urn("urn:li:sponsoredCampaign:12345")
        ('sponsoredCampaign', '12345')
    """
    match = URN_PATTERN.match(urn) if isinstance(urn, str) else None
    if not match:
        raise EncodingError(
            f"Malformed URN {urn!r}: expected urn:li:<entityType>:<id>",
        )
    return match.group(1), match.group(2)


def validate_urn(urn: str, entity_type: Optional[str] = None) -> str:
    """
    Validate a URN, optionally checking its entity type.

    Returns:
        The URN unchanged

    Raises:
        EncodingError: If the URN is malformed or of the wrong type
    """
    actual_type, _ = parse_urn(urn)
    if entity_type and actual_type != entity_type:
        raise EncodingError(
            f"URN {urn!r} has entity type {actual_type!r}, expected {entity_type!r}",
        )
    return urn


def build_linkedin_urn(entity_type: str, entity_id: str) -> str:
    """
    Build LinkedIn URN from entity type and ID.

    Examples:
        >>> build_linkedin_urn("digitalmediaAsset", "C5405AQEOFHXqeM2vRA")
        'urn:li:digitalmediaAsset:C5405AQEOFHXqeM2vRA'
    """
    return f"{URN_PREFIX}{entity_type}:{entity_id}"


def id_from_urn(value: str) -> str:
    """
    Return the trailing id segment of a URN, or the value itself.

    Examples:
        >>> id_from_urn("urn:li:digitalmediaAsset:C5405AQEOFHXqeM2vRA")
        'C5405AQEOFHXqeM2vRA'
        >>> id_from_urn("C5405AQEOFHXqeM2vRA")
        'C5405AQEOFHXqeM2vRA'
    """
    if is_urn(value):
        return value.rsplit(":", 1)[1]
    return value
