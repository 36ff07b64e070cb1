"""Static resource catalog.

Loads command_tree.yml once into Operation records and provides the
read-only list/describe/tree projections.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from linkedin_ads.core.constants import ParamLocation
from linkedin_ads.core.exceptions import ConfigurationError
from linkedin_ads.domain.models import Operation, ParamDef

CATALOG_PATH = Path(__file__).parent / "command_tree.yml"


@dataclass(frozen=True)
class Catalog:
    """Resources and their operations, in declaration order."""

    version: int
    default_linkedin_version: str
    default_base_url: str
    resources: Dict[str, Dict[str, Operation]] = field(default_factory=dict)

    def find_operation(self, resource: str, operation: str) -> Operation:
        """Look up an operation.

        Raises:
            ConfigurationError: If the resource or operation is unknown
        """
        ops = self.resources.get(resource)
        if ops is None or operation not in ops:
            raise ConfigurationError(f"Unknown command {resource} {operation}")
        return ops[operation]

    def defaults(self) -> Dict[str, str]:
        return {
            "default_linkedin_version": self.default_linkedin_version,
            "default_base_url": self.default_base_url,
        }

    def list_lines(self) -> List[str]:
        """Resource names with their operations indented below."""
        lines = []
        for resource, ops in self.resources.items():
            lines.append(resource)
            lines.extend(f"  {name}" for name in ops)
        return lines

    def list_json(self) -> List[Dict[str, Any]]:
        return [{"resource": name, "ops": list(ops)} for name, ops in self.resources.items()]

    def describe_lines(self, resource: str, operation: str) -> List[str]:
        op = self.find_operation(resource, operation)
        lines = [
            f"{resource} {op.name}",
            f"  method: {op.method}",
            f"  path: {op.path}",
        ]
        if op.description:
            lines.append(f"  description: {op.description}")
        if op.query:
            lines.append("  query defaults:")
            lines.extend(f"    {k}={v}" for k, v in op.query)
        if op.headers:
            lines.append("  headers defaults:")
            lines.extend(f"    {k}: {v}" for k, v in op.headers)
        if op.params:
            lines.append("  params:")
            for param in op.params:
                required = ", required" if param.required else ""
                lines.append(
                    f"    --{param.flag}  {param.param_type}  ({param.location.value}{required})"
                )
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "default_linkedin_version": self.default_linkedin_version,
            "default_base_url": self.default_base_url,
            "resources": [
                {"name": name, "ops": [op.to_dict() for op in ops.values()]}
                for name, ops in self.resources.items()
            ],
        }


def _parse_param(raw: Dict[str, Any], context: str) -> ParamDef:
    try:
        return ParamDef(
            name=raw["name"],
            flag=raw.get("flag", raw["name"]),
            param_type=raw.get("type", "string"),
            location=ParamLocation(raw.get("location", "query")),
            required=bool(raw.get("required", False)),
            description=raw.get("description", ""),
        )
    except (KeyError, ValueError) as e:
        raise ConfigurationError(f"Invalid param definition in {context}", details={"error": str(e)})


def _parse_operation(resource: str, raw: Dict[str, Any]) -> Operation:
    context = f"{resource} {raw.get('name', '?')}"
    if not raw.get("name") or not raw.get("method") or not raw.get("path"):
        raise ConfigurationError(f"Operation {context} needs name, method and path")
    return Operation(
        resource=resource,
        name=raw["name"],
        method=str(raw["method"]).upper(),
        path=raw["path"],
        params=tuple(_parse_param(p, context) for p in raw.get("params") or []),
        query=tuple((str(k), str(v)) for k, v in (raw.get("query") or {}).items()),
        headers=tuple((str(k), str(v)) for k, v in (raw.get("headers") or {}).items()),
        returns_id=bool(raw.get("returns_id", False)),
        description=raw.get("description", ""),
    )


def parse_catalog(data: Dict[str, Any]) -> Catalog:
    """Build a Catalog from the parsed YAML document."""
    if not isinstance(data, dict) or "resources" not in data:
        raise ConfigurationError("Catalog must be a mapping with a 'resources' list")

    resources: Dict[str, Dict[str, Operation]] = {}
    for resource in data["resources"]:
        name = resource["name"]
        resources[name] = {op["name"]: _parse_operation(name, op) for op in resource.get("ops") or []}

    return Catalog(
        version=int(data.get("version", 1)),
        default_linkedin_version=str(data.get("default_linkedin_version", "")),
        default_base_url=str(data.get("default_base_url", "")),
        resources=resources,
    )


@lru_cache(maxsize=None)
def load_catalog(path: Optional[Path] = None) -> Catalog:
    """Load and cache the catalog from YAML.

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    config_path = path or CATALOG_PATH
    if not config_path.exists():
        raise ConfigurationError(f"Catalog file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse catalog: {config_path}",
            details={"error": str(e)},
        )

    catalog = parse_catalog(data)
    logger.debug(f"Loaded catalog with {len(catalog.resources)} resources from {config_path}")
    return catalog
