"""Branch synchronization: from an empty workspace to a cleared target branch."""

from __future__ import annotations

from enum import Enum

from .errors import CredentialError, VersionControlError
from .models import CommitRequest
from .pipeline import StepRunner
from .vcs import CredentialResolver, VersionControlClient


class SyncState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    FETCHED = "fetched"
    AUTHORED = "authored"
    SYNC_CHECKED_OUT = "sync_checked_out"
    TARGET_CHECKED_OUT = "target_checked_out"
    CLEARED = "cleared"


_ORDER = list(SyncState)


class BranchSynchronizer:
    """Drive a version control client through the fixed checkout sequence.

    States only move forward. A failing step raises and leaves the state where
    it was; the workspace is thrown away by the caller, so there is nothing to
    roll back.
    """

    def __init__(
        self,
        client: VersionControlClient,
        credentials: CredentialResolver,
        runner: StepRunner,
    ) -> None:
        self.client = client
        self.credentials = credentials
        self.runner = runner
        self.state = SyncState.UNINITIALIZED
        self.author: tuple[str, str] = ("", "")

    def synchronize(self, request: CommitRequest) -> tuple[str, str]:
        """Run every step up to CLEARED and return the resolved (name, email)."""
        self._advance(SyncState.INITIALIZED, "init_git_client", self.client.init)
        self._advance(SyncState.FETCHED, "fetch_repo", lambda: self.client.fetch(""))

        self.author = self.runner.run(
            "resolve_author",
            lambda: self.credentials.get_user_info(request.repo),
            error_type=CredentialError,
        )
        self._advance(
            SyncState.AUTHORED,
            "set_author",
            lambda: self.client.set_author(*self.author),
        )
        self._advance(
            SyncState.SYNC_CHECKED_OUT,
            "checkout_sync_branch",
            lambda: self.client.checkout_or_orphan(request.sync_branch, False),
        )
        self._advance(
            SyncState.TARGET_CHECKED_OUT,
            "checkout_target_branch",
            lambda: self.client.checkout_or_new(request.target_branch, request.sync_branch, False),
        )
        self._advance(SyncState.CLEARED, "clear_repo", self.client.remove_contents)
        return self.author

    def _advance(self, target: SyncState, step: str, operation) -> None:
        if _ORDER.index(target) != _ORDER.index(self.state) + 1:
            raise RuntimeError(f"cannot move from {self.state.value} to {target.value}")
        self.runner.run(step, operation, error_type=VersionControlError)
        self.state = target
