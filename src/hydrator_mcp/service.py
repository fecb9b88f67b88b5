"""Hydration commit service: workspace, branch sync, writes, commit and push."""

from __future__ import annotations

import logging
import uuid
from contextlib import ExitStack
from functools import partial
from pathlib import Path

from .errors import HydratorError, WorkspaceError, WriteError
from .file_manager import FileManager
from .gauge import RequestGauge, pending_requests
from .hydration import HydrationWriter
from .models import CommitRequest, CommitResponse
from .pipeline import Deadline, StepRunner
from .runtime import RuntimeServiceDefaults
from .sync import BranchSynchronizer
from .vcs import ClientFactory, CredentialResolver, StaticCredentialResolver, default_client_factory
from .workspace import WorkspaceManager

logger = logging.getLogger(__name__)


class CommitService:
    """Main service turning a ``CommitRequest`` into one pushed commit."""

    def __init__(
        self,
        workspace_manager: WorkspaceManager | None = None,
        client_factory: ClientFactory | None = None,
        credentials: CredentialResolver | None = None,
        gauge: RequestGauge | None = None,
        file_manager: FileManager | None = None,
        request_timeout_seconds: float = 0.0,
    ) -> None:
        self.workspace_manager = workspace_manager or WorkspaceManager()
        self.client_factory = client_factory or default_client_factory()
        self.credentials = credentials or StaticCredentialResolver()
        self.gauge = gauge or pending_requests
        self.file_manager = file_manager or FileManager()
        self.request_timeout_seconds = request_timeout_seconds

    @classmethod
    def from_runtime(cls, defaults: RuntimeServiceDefaults) -> CommitService:
        """Build a service wired to the git CLI backend from runtime settings."""
        return cls(
            workspace_manager=WorkspaceManager(Path(defaults.workspace_root).expanduser()),
            client_factory=default_client_factory(
                git_binary=defaults.git_binary,
                timeout_seconds=defaults.git_timeout_seconds,
            ),
            credentials=StaticCredentialResolver(defaults.author_name, defaults.author_email),
            request_timeout_seconds=defaults.request_timeout_seconds,
        )

    def commit(
        self,
        request: CommitRequest,
        deadline: Deadline | None = None,
        correlation_id: str | None = None,
    ) -> CommitResponse:
        """Hydrate every requested path and push them as a single commit.

        Nothing reaches the remote before the final ``commit_and_push`` step, so
        any earlier failure leaves it untouched. The workspace is removed and the
        pending gauge decremented whatever the outcome.
        """
        context = {"repo": request.repo_url, "branch": request.target_branch, "drySha": request.dry_sha}
        runner = StepRunner(
            correlation_id=correlation_id or uuid.uuid4().hex[:12],
            deadline=deadline or Deadline(self.request_timeout_seconds),
            context=context,
        )
        log = logging.LoggerAdapter(logger, context)

        with self.gauge.track(request.repo_url):
            try:
                self._run_pipeline(request, runner)
            except HydratorError as exc:
                log.error(
                    "hydration commit failed at %s: %s", runner.failed_step or "unknown step", exc
                )
                raise

        log.info("pushed %d hydrated paths to %s", len(request.paths), request.target_branch)
        return CommitResponse(
            status="success",
            message=f"Hydrated manifests pushed to '{request.target_branch}'",
            target_branch=request.target_branch,
            dry_sha=request.dry_sha,
            paths_written=len(request.paths),
        )

    def _run_pipeline(self, request: CommitRequest, runner: StepRunner) -> None:
        with ExitStack() as stack:
            workspace = runner.run(
                "acquire_workspace",
                lambda: stack.enter_context(self.workspace_manager.workspace()),
                error_type=WorkspaceError,
            )
            client = runner.run(
                "create_git_client",
                lambda: self.client_factory(
                    request.repo_url, workspace, request.repo, deadline=runner.deadline
                ),
            )
            BranchSynchronizer(client, self.credentials, runner).synchronize(request)

            writer = HydrationWriter(workspace, self.file_manager)
            runner.run(
                "write_root_metadata",
                lambda: writer.write_root_metadata(request.repo_url, request.dry_sha),
                error_type=WriteError,
            )
            for entry in request.paths:
                runner.run(
                    "hydrate_path",
                    partial(writer.hydrate, entry, request.repo_url, request.dry_sha),
                    error_type=WriteError,
                )

            runner.run(
                "commit_and_push",
                lambda: client.commit_and_push(request.target_branch, request.commit_message),
            )
