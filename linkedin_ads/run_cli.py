"""LinkedIn Marketing API CLI - Main Entry Point.

Maps the Rest.li resource catalog onto HTTP requests and drives the
asset upload pipeline.

Usage:
    # Catalog operations
    linkedin-ads ad-account get --id 123456 --raw
    linkedin-ads campaign search --id 123456 --params '{"search": {"status": {"values": ["ACTIVE"]}}}'
    linkedin-ads analytics statistics --pivots CAMPAIGN --time-granularity DAILY \\
        --date-range '{"start": {"year": 2025, "month": 1, "day": 1}}' \\
        --accounts urn:li:sponsoredAccount:123456 --all

    # Arbitrary Rest.li call
    linkedin-ads raw GET /adAccounts --query '{"q": "search"}'

    # Asset uploads
    linkedin-ads image upload --owner urn:li:organization:1 --file ./banner.png
    linkedin-ads video upload --owner urn:li:organization:1 --file s3://bucket/clip.mp4 --wait

    # Discovery
    linkedin-ads list
    linkedin-ads describe campaign search --json
    linkedin-ads tree

    # Presigned S3 URLs
    linkedin-ads s3 presign get s3://bucket/key --expires 600

Environment Variables:
    LINKEDIN_ACCESS_TOKEN: Bearer token (required for API calls)
    LINKEDIN_VERSION: LinkedIn-Version header (YYYYMM)
    LINKEDIN_BASE_URL: API base URL
    LINKEDIN_RESTLI_PROTOCOL_VERSION: X-Restli-Protocol-Version header
    LINKEDIN_AD_ACCOUNT_ID: Default --id for ad-account commands
    LINKEDIN_ASSET_ID: Default --id for asset commands
    S3_ENDPOINT, S3_ACCESS_KEY, S3_SECRET_KEY: S3 access for s3:// files
"""

import argparse
import json
import os
import sys
from typing import Any, Callable, Dict, Optional

from loguru import logger

from linkedin_ads import __version__
from linkedin_ads.adapters.formatter import format_payload, format_response, render_error
from linkedin_ads.adapters.request_builder import build_request, parse_json_object
from linkedin_ads.adapters.restli_client import RestliClient
from linkedin_ads.adapters.restli_encoder import params_from_json
from linkedin_ads.catalog import Catalog, load_catalog
from linkedin_ads.core.config import CLIConfig, ConfigurationManager
from linkedin_ads.core.constants import (
    DEFAULT_IMAGE_RECIPE,
    DEFAULT_VIDEO_RECIPE,
    LOG_FORMAT,
    LOG_LEVEL_DEBUG,
    LOG_LEVEL_DEFAULT,
    POLL_INTERVAL_SECONDS,
    POLL_TIMEOUT_SECONDS,
    ExitCode,
    HTTPMethod,
    OutputMode,
    TunnelMode,
)
from linkedin_ads.core.exceptions import (
    ApiError,
    ConfigurationError,
    EncodingError,
    FileSourceError,
    LinkedInAdsError,
    PollTimeoutError,
    TransportError,
    UploadPhaseError,
)
from linkedin_ads.domain.models import ApiResponse, MediaKind, Operation, ParamDef
from linkedin_ads.infrastructure.file_source import resolve_file_source
from linkedin_ads.infrastructure.restli_session import RestliSession
from linkedin_ads.orchestrator.upload_orchestrator import AssetUploadOrchestrator
from shared.storage.s3_handler import S3Handler
from shared.utils.logging import setup_logging

FLAG_TYPES: Dict[str, Callable[[str], Any]] = {"int": int, "float": float}


# ============================================================================
# Argument parsing
# ============================================================================


def _base_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--debug", action="store_true", help="Enable debug-level logging on stderr")
    return parent


def _connection_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--access-token", help="Bearer token (default: $LINKEDIN_ACCESS_TOKEN)")
    parent.add_argument("--linkedin-version", help="LinkedIn-Version header (YYYYMM)")
    parent.add_argument("--base-url", help="API base URL")
    parent.add_argument("--restli-protocol-version", help="X-Restli-Protocol-Version header")
    parent.add_argument(
        "--tunnel",
        choices=[mode.value for mode in TunnelMode],
        help="Query tunneling: auto (long URLs only), always or never (default: auto)",
    )
    parent.add_argument("--timeout", type=float, help="Request timeout in seconds")

    output = parent.add_mutually_exclusive_group()
    output.add_argument(
        "--raw", dest="output", action="store_const", const=OutputMode.RAW, default=None,
        help="Print status line, headers and body verbatim",
    )
    output.add_argument(
        "--pretty", dest="output", action="store_const", const=OutputMode.PRETTY,
        help="Print indented JSON",
    )
    output.add_argument(
        "--json", dest="output", action="store_const", const=OutputMode.JSON,
        help="Print compact JSON (default)",
    )
    parent.add_argument(
        "--unwrap", action="store_true", help="Print only `elements` or `value` of the response"
    )
    return parent


def _query_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--fields", "--select", dest="fields", help="Rest.li field projection")
    parent.add_argument("--all", action="store_true", help="Follow paging links and collect all elements")
    parent.add_argument("--max-pages", type=int, default=0, help="Page limit for --all (0 = none)")
    parent.add_argument("--max-items", type=int, default=0, help="Element limit for --all (0 = none)")
    return parent


def _add_param_flag(parser: argparse.ArgumentParser, param: ParamDef) -> None:
    kind = param.param_type
    help_text = param.description or f"{kind} ({param.location.value})"
    if param.required:
        help_text = f"{help_text} [required]"
    parser.add_argument(
        f"--{param.flag}",
        dest=f"param_{param.name}",
        type=FLAG_TYPES.get(kind, str),
        metavar=kind.upper().replace("<", "_").replace(">", ""),
        help=help_text,
    )


def _add_resource_commands(subparsers, catalog: Catalog, parents) -> None:
    for resource, ops in catalog.resources.items():
        resource_parser = subparsers.add_parser(resource, help=f"{resource} operations")
        op_parsers = resource_parser.add_subparsers(dest="operation", metavar="OPERATION")
        op_parsers.required = True
        for name, op in ops.items():
            op_parser = op_parsers.add_parser(name, parents=parents, help=op.description or None)
            op_parser.add_argument("--id", help="Value for {id} in the path")
            op_parser.add_argument(
                "--params",
                help="JSON object: query parameters for GET/DELETE, body for POST/PUT/PATCH",
            )
            for param in op.params:
                _add_param_flag(op_parser, param)
            op_parser.set_defaults(handler=run_operation, resource=resource)


def build_parser(catalog: Catalog) -> argparse.ArgumentParser:
    """Build the argument parser from the catalog."""
    base = _base_parent()
    connection = _connection_parent()
    query = _query_parent()

    parser = argparse.ArgumentParser(
        prog="linkedin-ads",
        description="LinkedIn Marketing API (Rest.li) command-line client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    _add_resource_commands(subparsers, catalog, [base, connection, query])

    raw = subparsers.add_parser("raw", parents=[base, connection, query], help="Arbitrary Rest.li call")
    raw.add_argument("method", type=str.upper, choices=[m.value for m in HTTPMethod])
    raw.add_argument("path", help="Path relative to the base URL, or an absolute URL")
    raw.add_argument("--query", help="JSON object of query parameters")
    raw.add_argument("--body", help="JSON request body")
    raw.add_argument("--headers", help="JSON object of extra headers")
    raw.set_defaults(handler=run_raw)

    for kind, recipe in ((MediaKind.IMAGE, DEFAULT_IMAGE_RECIPE), (MediaKind.VIDEO, DEFAULT_VIDEO_RECIPE)):
        media = subparsers.add_parser(kind.value, help=f"{kind.value} assets")
        media_ops = media.add_subparsers(dest="operation", metavar="OPERATION")
        media_ops.required = True
        upload = media_ops.add_parser("upload", parents=[base, connection], help=f"Upload a {kind.value}")
        upload.add_argument("--owner", required=True, help="Owner URN (e.g. urn:li:organization:123)")
        upload.add_argument(
            "--file", required=True, help="Local path, @path, file://, http(s):// or s3:// reference"
        )
        upload.add_argument("--recipe", default=recipe, help=f"Recipe URN (default: {recipe})")
        upload.add_argument("--wait", action="store_true", help="Poll until processing completes")
        upload.add_argument("--poll-interval", type=float, default=POLL_INTERVAL_SECONDS)
        upload.add_argument("--poll-timeout", type=float, default=POLL_TIMEOUT_SECONDS)
        upload.add_argument("--workers", dest="upload_workers", type=int, help="Concurrent chunk uploads")
        upload.set_defaults(handler=run_upload, media_kind=kind)

    for name, handler, help_text in (
        ("list", run_list, "List resources and operations"),
        ("tree", run_tree, "Print the full command tree"),
    ):
        discovery = subparsers.add_parser(name, parents=[base], help=help_text)
        discovery.add_argument("--json", dest="as_json", action="store_true", help="JSON output")
        discovery.set_defaults(handler=handler)

    describe = subparsers.add_parser("describe", parents=[base], help="Describe one operation")
    describe.add_argument("resource")
    describe.add_argument("operation")
    describe.add_argument("--json", dest="as_json", action="store_true", help="JSON output")
    describe.set_defaults(handler=run_describe)

    s3 = subparsers.add_parser("s3", help="S3 helpers")
    s3_ops = s3.add_subparsers(dest="operation", metavar="OPERATION")
    s3_ops.required = True
    presign = s3_ops.add_parser("presign", parents=[base], help="Print a presigned S3 URL")
    presign.add_argument("method", choices=["get", "put"])
    presign.add_argument("url", help="s3://bucket/key")
    presign.add_argument("--expires", type=int, default=3600, help="Validity in seconds")
    presign.set_defaults(handler=run_presign)

    return parser


# ============================================================================
# Command handlers
# ============================================================================


def load_cli_config(args: argparse.Namespace, catalog: Catalog) -> CLIConfig:
    """Resolve configuration: flags > environment > catalog defaults."""
    manager = ConfigurationManager(catalog_defaults=catalog.defaults())
    return manager.load_config(
        {
            "access_token": getattr(args, "access_token", None),
            "linkedin_version": getattr(args, "linkedin_version", None),
            "base_url": getattr(args, "base_url", None),
            "restli_protocol_version": getattr(args, "restli_protocol_version", None),
            "tunnel_mode": getattr(args, "tunnel", None),
            "timeout": getattr(args, "timeout", None),
            "upload_workers": getattr(args, "upload_workers", None),
        }
    )


def make_client(config: CLIConfig) -> RestliClient:
    return RestliClient(config, session=RestliSession(pool_maxsize=max(10, config.upload_workers)))


def _output_mode(args: argparse.Namespace) -> OutputMode:
    return getattr(args, "output", None) or OutputMode.JSON


def _flag_value(param: ParamDef, value: Any) -> Any:
    """Complex flags accept a JSON object or a Rest.li literal."""
    if param.param_type == "complex" and isinstance(value, str) and value.lstrip().startswith("{"):
        return parse_json_object(value, f"--{param.flag}")
    return value


def _send(client: RestliClient, args: argparse.Namespace, method: str, path: str, query, headers, body) -> ApiResponse:
    if args.all:
        return client.fetch_all_pages(
            method, path, query, headers, body, max_pages=args.max_pages, max_items=args.max_items
        )
    return client.call(method, path, query, headers, body)


def run_operation(args: argparse.Namespace, catalog: Catalog) -> str:
    op: Operation = catalog.find_operation(args.resource, args.operation)
    config = load_cli_config(args, catalog)

    resource_id = args.id
    if resource_id is None and "{id}" in op.path:
        resource_id = config.default_id_for(op.resource)

    flag_values = {
        param.name: _flag_value(param, getattr(args, f"param_{param.name}", None))
        for param in op.params
    }
    built = build_request(op, resource_id, args.params, flag_values, args.fields)

    client = make_client(config)
    try:
        response = _send(client, args, built.method, built.path, built.query, built.headers, built.body)
    finally:
        client.close()
    return format_response(response, _output_mode(args), unwrap=args.unwrap)


def run_raw(args: argparse.Namespace, catalog: Catalog) -> str:
    query = params_from_json(parse_json_object(args.query, "--query") or {})
    if args.fields:
        query.update(params_from_json({"fields": args.fields}))
    headers = {str(k): str(v) for k, v in (parse_json_object(args.headers, "--headers") or {}).items()}
    body = None
    if args.body is not None:
        try:
            body = json.loads(args.body)
        except ValueError as e:
            raise EncodingError("Invalid JSON for --body", details={"error": str(e)})

    config = load_cli_config(args, catalog)
    client = make_client(config)
    try:
        response = _send(client, args, args.method, args.path, query, headers, body)
    finally:
        client.close()
    return format_response(response, _output_mode(args), unwrap=args.unwrap)


def run_upload(args: argparse.Namespace, catalog: Catalog) -> str:
    config = load_cli_config(args, catalog)
    client = make_client(config)
    orchestrator = AssetUploadOrchestrator(
        client,
        max_workers=config.upload_workers,
        poll_interval=args.poll_interval,
        poll_timeout=args.poll_timeout,
    )
    try:
        with resolve_file_source(args.file, s3_handler_factory=S3Handler) as source:
            logger.info(f"Resolved {args.file} to {source!r}")
            if args.media_kind is MediaKind.IMAGE:
                result = orchestrator.upload_image(args.owner, source, args.recipe, wait=args.wait)
            else:
                result = orchestrator.upload_video(args.owner, source, args.recipe, wait=args.wait)
    finally:
        client.close()

    mode = _output_mode(args)
    return format_payload(result.to_dict(), OutputMode.PRETTY if mode is OutputMode.PRETTY else OutputMode.JSON)


def run_list(args: argparse.Namespace, catalog: Catalog) -> str:
    if args.as_json:
        return format_payload(catalog.list_json(), OutputMode.PRETTY)
    return "\n".join(catalog.list_lines())


def run_describe(args: argparse.Namespace, catalog: Catalog) -> str:
    if args.as_json:
        return format_payload(catalog.find_operation(args.resource, args.operation).to_dict(), OutputMode.PRETTY)
    return "\n".join(catalog.describe_lines(args.resource, args.operation))


def run_tree(args: argparse.Namespace, catalog: Catalog) -> str:
    if args.as_json:
        return format_payload(catalog.to_dict(), OutputMode.PRETTY)
    lines = []
    for resource, ops in catalog.resources.items():
        lines.append(resource)
        for name, op in ops.items():
            lines.append(f"  {name:<12} {op.method:<6} {op.path}")
    return "\n".join(lines)


def run_presign(args: argparse.Namespace, catalog: Catalog) -> str:
    if args.expires <= 0:
        raise ConfigurationError(f"--expires must be positive, got {args.expires}")
    try:
        handler = S3Handler()
        if args.method == "get":
            return handler.presign_get(args.url, expires_seconds=args.expires)
        return handler.presign_put(args.url, expires_seconds=args.expires)
    except ValueError as e:
        raise EncodingError(str(e))


# ============================================================================
# Entry point
# ============================================================================


def exit_code_for(error: BaseException) -> ExitCode:
    """Map an exception to the process exit code."""
    if isinstance(error, (ConfigurationError, EncodingError, FileSourceError)):
        return ExitCode.INVALID_INPUT
    if isinstance(error, ApiError):
        return ExitCode.API_ERROR
    if isinstance(error, TransportError):
        return ExitCode.TRANSPORT_ERROR
    if isinstance(error, PollTimeoutError):
        return ExitCode.OUTCOME_UNKNOWN
    if isinstance(error, UploadPhaseError):
        return ExitCode.UPLOAD_FAILED
    if isinstance(error, KeyboardInterrupt):
        return ExitCode.INTERRUPTED
    return ExitCode.FAILURE


def _emit(text: str) -> None:
    if text:
        sys.stdout.write(text if text.endswith("\n") else f"{text}\n")
    sys.stdout.flush()


def _silence_stdout() -> None:
    # Further writes (including interpreter shutdown flush) go nowhere
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, sys.stdout.fileno())


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (see ExitCode)
    """
    try:
        catalog = load_catalog()
    except ConfigurationError as e:
        sys.stderr.write(f"{render_error(e)}\n")
        return ExitCode.INVALID_INPUT

    args = build_parser(catalog).parse_args(argv)
    setup_logging(level=LOG_LEVEL_DEBUG if args.debug else LOG_LEVEL_DEFAULT, format=LOG_FORMAT)
    logger.debug(f"linkedin-ads {__version__}: {args.command}")

    mode = getattr(args, "output", None)
    try:
        _emit(args.handler(args, catalog))
        return ExitCode.OK
    except BrokenPipeError:
        _silence_stdout()
        return ExitCode.OK
    except LinkedInAdsError as e:
        logger.debug(f"{e.__class__.__name__}: {e!r}")
        sys.stderr.write(f"{render_error(e, mode)}\n")
        return exit_code_for(e)
    except KeyboardInterrupt:
        sys.stderr.write("error: interrupted\n")
        return ExitCode.INTERRUPTED
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        sys.stderr.write(f"{render_error(e, mode)}\n")
        return ExitCode.FAILURE


if __name__ == "__main__":
    sys.exit(main())
