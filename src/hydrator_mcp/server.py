"""MCP server entrypoint and tool definitions for the hydrator."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import time
import uuid
from typing import Annotated, Any, Callable

from mcp.server.fastmcp import FastMCP
from pydantic import Field, ValidationError

from .errors import ErrorCode, HydratorError
from .gauge import pending_requests
from .models import CommitRequest, HydrationPath, RepoConnectionInfo
from .runtime import (
    configure_logging,
    effective_config_payload,
    get_allow_public_http_default,
    get_runtime_defaults,
    get_runtime_service_defaults,
    validate_runtime_service_values,
    validate_streamable_http_binding,
)
from .service import CommitService

logger = logging.getLogger(__name__)


def _build_fastmcp() -> FastMCP:
    """Instantiate FastMCP with compatibility fallbacks for older SDK versions."""
    kwargs: dict[str, Any] = {
        "name": "hydrator-commit",
        "instructions": (
            "Commit fully rendered manifests to a hydrated git branch. "
            "Use hydrator_commit to write manifests, provenance metadata and READMEs "
            "for each path and push them as one commit, and hydrator_pending to "
            "inspect in-flight commit requests."
        ),
        "json_response": True,
    }
    optional_keys = ("json_response",)

    while True:
        try:
            return FastMCP(**kwargs)
        except TypeError as exc:
            message = str(exc).lower()
            if "unexpected keyword argument" not in message:
                raise

            removed_key = next((key for key in optional_keys if key in message and key in kwargs), None)
            if removed_key is None:
                raise
            kwargs.pop(removed_key, None)
            logger.debug(
                "FastMCP constructor does not support '%s'; using compatibility fallback.",
                removed_key,
            )


mcp = _build_fastmcp()

service = CommitService()

WRITE_TOOL_ANNOTATIONS = {
    "readOnlyHint": False,
    "idempotentHint": False,
    "destructiveHint": True,
    "openWorldHint": True,
}

READ_ONLY_TOOL_ANNOTATIONS = {
    "readOnlyHint": True,
    "idempotentHint": True,
    "destructiveHint": False,
    "openWorldHint": False,
}


def _register_tool(annotations: dict[str, bool]):
    """Register tool with annotations, falling back for SDKs without them."""

    def decorator(func):
        try:
            return mcp.tool(annotations=annotations)(func)
        except TypeError as exc:
            message = str(exc).lower()
            if "annotations" not in message and "unexpected keyword argument" not in message:
                raise
            logger.debug("FastMCP tool annotations not supported in this SDK version; using fallback.")
            return mcp.tool()(func)

    return decorator


def _error_payload_from_exception(exc: Exception) -> dict[str, Any]:
    """Convert internal exceptions into stable MCP error payloads."""
    if isinstance(exc, HydratorError):
        return exc.to_payload()
    if isinstance(exc, ValidationError):
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_INPUT.value,
            "message": "Input validation failed",
            "suggestion": "Check field constraints and request schema.",
            "details": {"errors": exc.errors(include_context=False, include_input=False)},
        }
    logger.exception("Unhandled server exception", exc_info=exc)
    return {
        "status": "error",
        "error_code": ErrorCode.INTERNAL_ERROR.value,
        "message": str(exc),
        "suggestion": "Check server logs and retry the operation.",
        "details": {},
    }


def _build_correlation_id() -> str:
    """Generate short operation correlation IDs for diagnostics."""
    return uuid.uuid4().hex[:12]


def _log_tool_phase(
    *,
    correlation_id: str,
    tool_name: str,
    status: str,
    elapsed_seconds: float,
    details: dict[str, Any] | None = None,
) -> None:
    payload: dict[str, Any] = {
        "event_type": "mcp_tool_phase",
        "correlation_id": correlation_id,
        "tool_name": tool_name,
        "phase": "total",
        "status": status,
        "elapsed_ms": round(elapsed_seconds * 1000, 3),
    }
    if details:
        payload["details"] = details
    logger.info("mcp_tool_phase %s", json.dumps(payload, ensure_ascii=True, sort_keys=True))


def _run_tool(
    tool_name: str,
    operation: Callable[[str], dict[str, Any]],
) -> dict[str, Any]:
    """Execute a tool operation, attaching a correlation id to every payload."""
    started = time.perf_counter()
    correlation_id = _build_correlation_id()
    try:
        response_payload = dict(operation(correlation_id))
    except Exception as exc:  # noqa: BLE001
        error_payload = _error_payload_from_exception(exc)
        error_payload["correlation_id"] = correlation_id
        _log_tool_phase(
            correlation_id=correlation_id,
            tool_name=tool_name,
            status="error",
            elapsed_seconds=time.perf_counter() - started,
            details={"error_code": error_payload.get("error_code")},
        )
        return error_payload

    response_payload["correlation_id"] = correlation_id
    _log_tool_phase(
        correlation_id=correlation_id,
        tool_name=tool_name,
        status="ok",
        elapsed_seconds=time.perf_counter() - started,
    )
    return response_payload


@_register_tool(WRITE_TOOL_ANNOTATIONS)
def hydrator_commit(
    repo_url: Annotated[str, Field(min_length=1, description="Hydrated repository URL")],
    target_branch: Annotated[str, Field(min_length=1, description="Branch receiving the commit")],
    sync_branch: Annotated[
        str, Field(min_length=1, description="Baseline branch the target branch is created from")
    ],
    dry_sha: Annotated[str, Field(min_length=1, description="Dry source commit SHA")],
    commit_message: Annotated[str, Field(min_length=1, description="Commit message")],
    paths: Annotated[
        list[dict[str, Any]],
        Field(description="Hydration paths: {path, manifests, commands}"),
    ],
    repo_connection_info: Annotated[
        dict[str, Any] | None,
        Field(description="Optional credentials, proxy and author for the repository"),
    ] = None,
) -> dict[str, Any]:
    """Write hydrated manifests for every path and push them as one commit."""

    def operation(correlation_id: str) -> dict[str, Any]:
        request = CommitRequest(
            repo_url=repo_url,
            target_branch=target_branch,
            sync_branch=sync_branch,
            dry_sha=dry_sha,
            commit_message=commit_message,
            paths=[HydrationPath.model_validate(item) for item in paths],
            repo=RepoConnectionInfo.model_validate(repo_connection_info or {"repo": repo_url}),
        )
        return service.commit(request, correlation_id=correlation_id).model_dump(mode="json")

    return _run_tool("hydrator_commit", operation)


@_register_tool(READ_ONLY_TOOL_ANNOTATIONS)
def hydrator_pending(
    repo_url: Annotated[
        str, Field(description="Repository to report; empty reports every repository")
    ] = "",
) -> dict[str, Any]:
    """Report in-flight commit requests."""

    def operation(_: str) -> dict[str, Any]:
        return {
            "status": "success",
            "message": "Pending commit requests",
            "pending": pending_requests.pending(repo_url or None),
            "by_repo": pending_requests.snapshot(),
        }

    return _run_tool("hydrator_pending", operation)


def main() -> None:
    """Run the hydrator MCP server in stdio or streamable HTTP mode."""
    parser = argparse.ArgumentParser(description="Hydrator commit MCP server")
    try:
        transport_default, host_default, port_default = get_runtime_defaults()
        service_defaults = get_runtime_service_defaults()
        allow_public_http_default = get_allow_public_http_default()
    except ValueError as exc:
        parser.error(str(exc))
    parser.add_argument(
        "--transport",
        choices=["stdio", "streamable-http"],
        default=transport_default,
        help="MCP transport mode (default: stdio)",
    )
    parser.add_argument("--host", default=host_default, help="Host for streamable HTTP transport")
    parser.add_argument("--port", type=int, default=port_default, help="Port for streamable HTTP")
    parser.add_argument(
        "--allow-public-http",
        action="store_true",
        default=allow_public_http_default,
        help="Allow non-loopback streamable-http binding.",
    )
    parser.add_argument("--workspace-root", default=service_defaults.workspace_root)
    parser.add_argument("--git-binary", default=service_defaults.git_binary)
    parser.add_argument(
        "--git-timeout-seconds", type=float, default=service_defaults.git_timeout_seconds
    )
    parser.add_argument(
        "--request-timeout-seconds",
        type=float,
        default=service_defaults.request_timeout_seconds,
    )
    parser.add_argument("--author-name", default=service_defaults.author_name)
    parser.add_argument("--author-email", default=service_defaults.author_email)
    parser.add_argument("--log-level", default=service_defaults.log_level)
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate runtime settings and exit without starting server transport.",
    )
    parser.add_argument(
        "--print-effective-config",
        action="store_true",
        help="Print sanitized effective runtime configuration and exit.",
    )
    args = parser.parse_args()

    runtime_service = dataclasses.replace(
        service_defaults,
        workspace_root=str(args.workspace_root).strip(),
        git_binary=str(args.git_binary).strip(),
        git_timeout_seconds=float(args.git_timeout_seconds),
        request_timeout_seconds=float(args.request_timeout_seconds),
        author_name=str(args.author_name).strip(),
        author_email=str(args.author_email).strip(),
        log_level=str(args.log_level).strip().upper(),
    )
    try:
        validate_streamable_http_binding(
            transport=args.transport,
            host=args.host,
            allow_public_http=args.allow_public_http,
        )
        validate_runtime_service_values(runtime_service)
    except ValueError as exc:
        parser.error(str(exc))

    global service
    configure_logging(runtime_service.log_level)
    pending_requests.configure()
    service = CommitService.from_runtime(runtime_service)

    if args.print_effective_config:
        print(
            json.dumps(
                effective_config_payload(
                    runtime_service,
                    transport=str(args.transport),
                    host=str(args.host),
                    port=int(args.port),
                ),
                indent=2,
                sort_keys=True,
            )
        )

    if args.check_config or args.print_effective_config:
        if not args.print_effective_config:
            print("Configuration is valid.")
        return

    mcp.settings.host = args.host
    mcp.settings.port = int(args.port)
    if args.transport == "stdio":
        mcp.run()
        return
    mcp.run(transport="streamable-http")


if __name__ == "__main__":
    main()
