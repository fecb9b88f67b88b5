"""Runtime configuration helpers."""

from __future__ import annotations

import ipaddress
import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .constants import DEFAULT_GIT_TIMEOUT_SECONDS, DEFAULT_WORKSPACE_ROOT

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}
TRANSPORTS = {"stdio", "streamable-http"}
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class RuntimeServiceDefaults:
    """Commit-service settings sourced from environment variables or CLI."""

    workspace_root: str
    git_binary: str
    git_timeout_seconds: float
    request_timeout_seconds: float
    author_name: str
    author_email: str
    log_level: str


def get_runtime_defaults(env: Mapping[str, str] | None = None) -> tuple[str, str, int]:
    """Validate and return MCP transport defaults from environment variables."""
    source = os.environ if env is None else env

    transport_default = source.get("HYDRATOR_MCP_TRANSPORT", "stdio")
    if transport_default not in TRANSPORTS:
        raise ValueError("HYDRATOR_MCP_TRANSPORT must be 'stdio' or 'streamable-http'.")

    host_default = source.get("HYDRATOR_MCP_HOST", "127.0.0.1")

    port_env = source.get("HYDRATOR_MCP_PORT", "8000")
    try:
        port_default = int(port_env)
    except ValueError as exc:
        raise ValueError("HYDRATOR_MCP_PORT must be an integer.") from exc
    if not (1 <= port_default <= 65535):
        raise ValueError("HYDRATOR_MCP_PORT must be between 1 and 65535.")

    validate_streamable_http_binding(
        transport=transport_default,
        host=host_default,
        allow_public_http=get_allow_public_http_default(source),
    )

    return transport_default, host_default, port_default


def get_allow_public_http_default(env: Mapping[str, str] | None = None) -> bool:
    source = os.environ if env is None else env
    return _parse_bool_env(source=source, key="HYDRATOR_MCP_ALLOW_PUBLIC_HTTP", default=False)


def get_runtime_service_defaults(env: Mapping[str, str] | None = None) -> RuntimeServiceDefaults:
    """Return validated commit-service settings from environment variables."""
    source = os.environ if env is None else env
    defaults = RuntimeServiceDefaults(
        workspace_root=source.get("HYDRATOR_WORKSPACE_ROOT", DEFAULT_WORKSPACE_ROOT).strip(),
        git_binary=source.get("HYDRATOR_GIT_BINARY", "git").strip(),
        git_timeout_seconds=_parse_float_env(
            source=source,
            key="HYDRATOR_GIT_TIMEOUT_SECONDS",
            default=DEFAULT_GIT_TIMEOUT_SECONDS,
            min_value=0.1,
        ),
        request_timeout_seconds=_parse_float_env(
            source=source,
            key="HYDRATOR_REQUEST_TIMEOUT_SECONDS",
            default=0.0,
            min_value=0.0,
        ),
        author_name=source.get("HYDRATOR_AUTHOR_NAME", "").strip(),
        author_email=source.get("HYDRATOR_AUTHOR_EMAIL", "").strip(),
        log_level=source.get("HYDRATOR_LOG_LEVEL", "INFO").strip().upper(),
    )
    validate_runtime_service_values(defaults)
    return defaults


def validate_runtime_service_values(defaults: RuntimeServiceDefaults) -> None:
    """Validate service settings after CLI+env merging."""
    if not defaults.workspace_root:
        raise ValueError("workspace-root must not be empty.")
    if not Path(defaults.workspace_root).expanduser().is_absolute():
        raise ValueError(f"workspace-root must be absolute: {defaults.workspace_root}")
    if not defaults.git_binary:
        raise ValueError("git-binary must not be empty.")
    if defaults.git_timeout_seconds <= 0:
        raise ValueError("git-timeout-seconds must be > 0.")
    if defaults.request_timeout_seconds < 0:
        raise ValueError("request-timeout-seconds must be >= 0.")
    if defaults.author_email and "@" not in defaults.author_email:
        raise ValueError("author-email must be a valid email address.")
    if defaults.log_level not in LOG_LEVELS:
        allowed = ", ".join(sorted(LOG_LEVELS))
        raise ValueError(f"log-level must be one of: {allowed}.")


def configure_logging(level: str) -> None:
    """Configure root logging once for CLI and server entrypoints."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def effective_config_payload(
    defaults: RuntimeServiceDefaults,
    transport: str = "",
    host: str = "",
    port: int = 0,
) -> dict[str, object]:
    """Return a sanitized, JSON-ready view of the runtime configuration."""
    payload: dict[str, object] = {
        "workspace_root": defaults.workspace_root,
        "git_binary": defaults.git_binary,
        "git_timeout_seconds": defaults.git_timeout_seconds,
        "request_timeout_seconds": defaults.request_timeout_seconds,
        "author_name": defaults.author_name,
        "author_email": defaults.author_email,
        "log_level": defaults.log_level,
    }
    if transport:
        payload.update({"transport": transport, "host": host, "port": port})
    return payload


def validate_streamable_http_binding(transport: str, host: str, allow_public_http: bool) -> None:
    """Validate host exposure policy for streamable HTTP transport."""
    if transport != "streamable-http":
        return
    if not host.strip():
        raise ValueError("Host must not be empty when using streamable-http transport.")
    if not is_loopback_host(host) and not allow_public_http:
        raise ValueError(
            "Refusing non-loopback streamable-http binding without explicit opt-in. "
            "Set --allow-public-http or HYDRATOR_MCP_ALLOW_PUBLIC_HTTP=true."
        )


def is_loopback_host(host: str) -> bool:
    """Return whether a host value maps to a loopback interface."""
    normalized = host.strip().lower().strip("[]")
    if normalized in {"localhost", "127.0.0.1", "::1"}:
        return True
    try:
        return ipaddress.ip_address(normalized).is_loopback
    except ValueError:
        return False


def _parse_bool_env(source: Mapping[str, str], key: str, default: bool) -> bool:
    raw = source.get(key)
    if raw is None or not str(raw).strip():
        return default
    normalized = str(raw).strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValueError(f"{key} must be a boolean value (true/false).")


def _parse_float_env(
    source: Mapping[str, str],
    key: str,
    default: float,
    min_value: float | None = None,
) -> float:
    raw = source.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        parsed = float(str(raw).strip())
    except ValueError as exc:
        raise ValueError(f"{key} must be a number.") from exc
    if not math.isfinite(parsed):
        raise ValueError(f"{key} must be a finite number.")
    if min_value is not None and parsed < min_value:
        raise ValueError(f"{key} must be >= {min_value}.")
    return parsed
