"""Command line interface for the hydrator with parity to MCP tools."""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import ErrorCode, HydratorError
from .gauge import pending_requests
from .hydration import render_readme
from .models import CommitRequest, HydratorMetadata
from .runtime import (
    RuntimeServiceDefaults,
    configure_logging,
    effective_config_payload,
    get_runtime_service_defaults,
    validate_runtime_service_values,
)
from .service import CommitService


def _build_service(defaults: RuntimeServiceDefaults) -> CommitService:
    return CommitService.from_runtime(defaults)


def _load_request(path_value: str) -> dict[str, Any]:
    try:
        if path_value == "-":
            raw = sys.stdin.read()
        else:
            raw = Path(path_value).expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        raise HydratorError(
            ErrorCode.INVALID_INPUT,
            f"Unable to read request file {path_value}.",
            "Ensure --request points to a readable JSON file or '-' for stdin.",
        ) from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HydratorError(
            ErrorCode.INVALID_INPUT,
            "Request file must contain valid JSON.",
            "Provide a JSON object with repoURL, targetBranch, syncBranch, drySha, commitMessage and paths.",
        ) from exc
    if not isinstance(payload, dict):
        raise HydratorError(
            ErrorCode.INVALID_INPUT,
            "Request file must contain a JSON object.",
            "Provide a JSON object with repoURL, targetBranch, syncBranch, drySha, commitMessage and paths.",
        )
    return payload


def _print_payload(payload: dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2))
        return

    if "readme" in payload:
        print(payload["readme"], end="")
        return

    status = payload.get("status", "unknown").upper()
    message = payload.get("message", "")
    print(f"[{status}] {message}")

    if payload.get("status") == "error":
        error_code = payload.get("error_code", "")
        suggestion = payload.get("suggestion", "")
        step = payload.get("details", {}).get("step", "")
        if error_code:
            print(f"error_code: {error_code}")
        if step:
            print(f"step: {step}")
        if suggestion:
            print(f"suggestion: {suggestion}")
        return

    for key in ("target_branch", "dry_sha", "paths_written"):
        if key in payload and payload[key] not in ("", None):
            print(f"{key}: {payload[key]}")

    if "config" in payload and isinstance(payload["config"], dict):
        print("config:")
        for config_key, config_value in payload["config"].items():
            print(f"  {config_key}: {config_value}")


def _error_payload(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, HydratorError):
        return exc.to_payload()
    if isinstance(exc, ValidationError):
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_INPUT.value,
            "message": "Input validation failed",
            "suggestion": "Check the request fields and constraints.",
            "details": {"errors": exc.errors(include_context=False, include_input=False)},
        }
    if isinstance(exc, ValueError):
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_INPUT.value,
            "message": str(exc),
            "suggestion": "Check runtime options and HYDRATOR_* environment variables.",
            "details": {},
        }
    return {
        "status": "error",
        "error_code": ErrorCode.INTERNAL_ERROR.value,
        "message": str(exc),
        "suggestion": "Retry with --json for diagnostics and inspect logs.",
        "details": {},
    }


def _add_runtime_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--workspace-root", default=None, help="Root for per-request workspaces")
    parser.add_argument("--git-binary", default=None, help="git executable to run")
    parser.add_argument(
        "--git-timeout-seconds",
        type=float,
        default=None,
        help="Timeout for each git command",
    )
    parser.add_argument(
        "--request-timeout-seconds",
        type=float,
        default=None,
        help="Deadline for the whole commit request (0 disables)",
    )
    parser.add_argument("--author-name", default=None, help="Default committer name")
    parser.add_argument("--author-email", default=None, help="Default committer email")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    parser.add_argument("--json", action="store_true", help="Output machine-readable JSON")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hydrator-cli",
        description="Commit hydrated manifests to a git branch",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    commit = subparsers.add_parser("commit", help="Hydrate manifests and push one commit")
    commit.add_argument(
        "-r",
        "--request",
        required=True,
        help="Path to a JSON commit request ('-' reads stdin)",
    )
    _add_runtime_arguments(commit)

    readme = subparsers.add_parser("readme", help="Render the hydration README")
    readme.add_argument("--repo-url", required=True, help="Dry source repository URL")
    readme.add_argument("--dry-sha", required=True, help="Dry source commit SHA")
    readme.add_argument(
        "--command",
        dest="hydrate_commands",
        action="append",
        default=[],
        help="Hydration command to list in the README; repeat once per command",
    )
    readme.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    config = subparsers.add_parser("config", help="Print the effective runtime configuration")
    _add_runtime_arguments(config)

    return parser


def _merge_runtime_defaults(args: argparse.Namespace) -> RuntimeServiceDefaults:
    defaults = get_runtime_service_defaults()
    overrides = {
        key: getattr(args, key)
        for key in (
            "workspace_root",
            "git_binary",
            "git_timeout_seconds",
            "request_timeout_seconds",
            "author_name",
            "author_email",
            "log_level",
        )
        if getattr(args, key, None) is not None
    }
    if "log_level" in overrides:
        overrides["log_level"] = str(overrides["log_level"]).upper()
    merged = dataclasses.replace(defaults, **overrides)
    validate_runtime_service_values(merged)
    return merged


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    as_json = bool(getattr(args, "json", False))

    try:
        if args.command == "commit":
            defaults = _merge_runtime_defaults(args)
            configure_logging(defaults.log_level)
            pending_requests.configure()
            request = CommitRequest.model_validate(_load_request(args.request))
            response = _build_service(defaults).commit(request).model_dump(mode="json")
        elif args.command == "readme":
            metadata = HydratorMetadata(
                commands=list(args.hydrate_commands),
                repo_url=args.repo_url,
                dry_sha=args.dry_sha,
            )
            response = {
                "status": "success",
                "message": "README rendered",
                "readme": render_readme(metadata),
            }
        else:
            defaults = _merge_runtime_defaults(args)
            response = {
                "status": "success",
                "message": "Configuration is valid.",
                "config": effective_config_payload(defaults),
            }

        _print_payload(response, as_json=as_json)
        return 0
    except Exception as exc:  # noqa: BLE001
        payload = _error_payload(exc)
        _print_payload(payload, as_json=as_json)
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
