"""Version control boundary: the client protocol and a git CLI backend."""

from __future__ import annotations

import base64
import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Protocol

from .constants import DEFAULT_GIT_TIMEOUT_SECONDS, DEFAULT_REMOTE, ORPHAN_INITIAL_COMMIT_MESSAGE
from .errors import CredentialError, OperationCancelledError, VersionControlError
from .models import RepoConnectionInfo
from .pipeline import Deadline

logger = logging.getLogger(__name__)

UNKNOWN_REF_MARKER = "did not match any file(s) known to git"
NOTHING_TO_COMMIT_MARKER = "nothing to commit"


class VersionControlClient(Protocol):
    """Capabilities the commit pipeline drives.

    Every method returns the tool's diagnostic output and raises
    ``VersionControlError`` on failure.
    """

    def init(self) -> str: ...

    def fetch(self, ref: str) -> str: ...

    def set_author(self, name: str, email: str) -> str: ...

    def checkout_or_orphan(self, branch: str, detach: bool) -> str: ...

    def checkout_or_new(self, branch: str, base: str, detach: bool) -> str: ...

    def remove_contents(self) -> str: ...

    def commit_and_push(self, branch: str, message: str) -> str: ...


class CredentialResolver(Protocol):
    def get_user_info(self, connection: RepoConnectionInfo) -> tuple[str, str]: ...


ClientFactory = Callable[..., VersionControlClient]


class StaticCredentialResolver:
    """Resolve the committer from the connection info or configured defaults."""

    def __init__(self, default_name: str = "", default_email: str = "") -> None:
        self.default_name = default_name.strip()
        self.default_email = default_email.strip()

    def get_user_info(self, connection: RepoConnectionInfo) -> tuple[str, str]:
        name = connection.author_name.strip() or self.default_name
        email = connection.author_email.strip() or self.default_email
        if email and "@" not in email:
            raise CredentialError(
                f"Committer email '{email}' is not a valid address",
                details={"repo": connection.repo},
            )
        return name, email


class GitCLIClient:
    """``VersionControlClient`` backed by the ``git`` executable."""

    def __init__(
        self,
        repo_url: str,
        root: Path,
        connection: RepoConnectionInfo | None = None,
        git_binary: str = "git",
        timeout_seconds: float = DEFAULT_GIT_TIMEOUT_SECONDS,
        runner: Callable[..., subprocess.CompletedProcess[str]] | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        self.repo_url = repo_url
        self.root = Path(root)
        self.connection = connection or RepoConnectionInfo(repo=repo_url)
        self.git_binary = git_binary
        self.timeout_seconds = timeout_seconds
        self._runner = runner or subprocess.run
        self.deadline = deadline

    def init(self) -> str:
        if (self.root / ".git").exists():
            return ""
        output = self._run("init")
        self._run("remote", "add", DEFAULT_REMOTE, self.repo_url)
        return output

    def fetch(self, ref: str) -> str:
        args = ["fetch", DEFAULT_REMOTE]
        if ref:
            args.append(ref)
        return self._run(*args, "--force", "--prune")

    def set_author(self, name: str, email: str) -> str:
        outputs = []
        if name:
            outputs.append(self._run("config", "user.name", name))
        if email:
            outputs.append(self._run("config", "user.email", email))
        return "\n".join(item for item in outputs if item)

    def checkout_or_orphan(self, branch: str, detach: bool) -> str:
        try:
            return self._checkout(branch, detach)
        except VersionControlError as exc:
            if not _is_unknown_ref(exc):
                raise
        logger.debug("branch %s does not exist, creating orphan", branch)
        output = self._run("switch", "--orphan", branch)
        self._run("commit", "--allow-empty", "-m", ORPHAN_INITIAL_COMMIT_MESSAGE)
        return output

    def checkout_or_new(self, branch: str, base: str, detach: bool) -> str:
        try:
            return self._checkout(branch, detach)
        except VersionControlError as exc:
            if not _is_unknown_ref(exc):
                raise
        logger.debug("branch %s does not exist, creating from %s", branch, base)
        return self._run("checkout", "-b", branch, base)

    def remove_contents(self) -> str:
        return self._run("rm", "-r", "--ignore-unmatch", ".")

    def commit_and_push(self, branch: str, message: str) -> str:
        self._run("add", ".")
        try:
            commit_output = self._run("commit", "-m", message)
        except VersionControlError as exc:
            if NOTHING_TO_COMMIT_MARKER not in str(exc.details.get("output", "")):
                raise
            commit_output = str(exc.details.get("output", ""))
        push_output = self._run("push", DEFAULT_REMOTE, branch)
        return "\n".join(item for item in (commit_output, push_output) if item)

    def _checkout(self, branch: str, detach: bool) -> str:
        if detach:
            return self._run("checkout", "--detach", branch)
        return self._run("checkout", branch)

    def _config_env(self) -> dict[str, str]:
        # Passed as GIT_CONFIG_* variables so credentials never appear in argv.
        settings: list[tuple[str, str]] = []
        if self.connection.has_basic_auth:
            token = base64.b64encode(
                f"{self.connection.username}:{self.connection.password}".encode("utf-8")
            ).decode("ascii")
            settings.append(("http.extraHeader", f"Authorization: Basic {token}"))
        if self.connection.insecure:
            settings.append(("http.sslVerify", "false"))
        if self.connection.proxy:
            settings.append(("http.proxy", self.connection.proxy))
        if not settings:
            return {}
        env = {"GIT_CONFIG_COUNT": str(len(settings))}
        for index, (key, value) in enumerate(settings):
            env[f"GIT_CONFIG_KEY_{index}"] = key
            env[f"GIT_CONFIG_VALUE_{index}"] = value
        return env

    def _command_timeout(self, subcommand: str) -> float:
        remaining = self.deadline.remaining() if self.deadline is not None else None
        if remaining is None:
            return self.timeout_seconds
        if remaining <= 0:
            raise OperationCancelledError(
                f"deadline exceeded before git {subcommand}",
                details={"command": subcommand},
            )
        return min(self.timeout_seconds, remaining)

    def _run(self, *args: str) -> str:
        subcommand = args[0]
        timeout = self._command_timeout(subcommand)
        command = [self.git_binary, *args]
        # Output markers below are matched against untranslated git messages.
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C", **self._config_env()}
        try:
            completed = self._runner(
                command,
                cwd=str(self.root),
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise VersionControlError(
                f"git {subcommand} timed out after {timeout:g}s",
                details={"command": subcommand},
            ) from exc
        except OSError as exc:
            raise VersionControlError(
                f"Unable to run {self.git_binary}: {exc}",
                details={"command": subcommand},
            ) from exc

        output = "\n".join(
            part.strip() for part in (completed.stdout or "", completed.stderr or "") if part.strip()
        )
        logger.debug("git %s exited %s", subcommand, completed.returncode)
        if completed.returncode != 0:
            raise VersionControlError(
                f"git {subcommand} failed with exit code {completed.returncode}",
                details={"command": subcommand, "output": output},
            )
        return output


def _is_unknown_ref(exc: VersionControlError) -> bool:
    return UNKNOWN_REF_MARKER in str(exc.details.get("output", ""))


def default_client_factory(
    git_binary: str = "git",
    timeout_seconds: float = DEFAULT_GIT_TIMEOUT_SECONDS,
) -> ClientFactory:
    """Build a factory producing ``GitCLIClient`` instances."""

    def build(
        repo_url: str,
        root: Path,
        connection: RepoConnectionInfo,
        deadline: Deadline | None = None,
    ) -> VersionControlClient:
        return GitCLIClient(
            repo_url,
            root,
            connection=connection,
            git_binary=git_binary,
            timeout_seconds=timeout_seconds,
            deadline=deadline,
        )

    return build
