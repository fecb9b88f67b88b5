from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable

import pytest

from hydrator_mcp.errors import VersionControlError
from hydrator_mcp.gauge import RequestGauge
from hydrator_mcp.models import RepoConnectionInfo
from hydrator_mcp.pipeline import Deadline
from hydrator_mcp.service import CommitService
from hydrator_mcp.vcs import StaticCredentialResolver
from hydrator_mcp.workspace import WorkspaceManager


class FakeRemote:
    """Branches pushed so far, each a {relative path: file content} snapshot."""

    def __init__(self) -> None:
        self.branches: dict[str, dict[str, str]] = {}
        self.reject_push = False


class FakeClient:
    """In-memory stand-in for ``GitCLIClient`` recording every capability call."""

    def __init__(
        self,
        remote: FakeRemote,
        root: Path,
        fail_on: str = "",
        on_call: Callable[[str], None] | None = None,
    ) -> None:
        self.remote = remote
        self.root = root
        self.fail_on = fail_on
        self.on_call = on_call
        self.calls: list[tuple] = []

    def _call(self, name: str, *args) -> str:
        self.calls.append((name, *args))
        if self.on_call is not None:
            self.on_call(name)
        if self.fail_on == name:
            raise VersionControlError(f"{name} exploded", details={"output": "fatal: boom"})
        return f"{name} ok"

    def init(self) -> str:
        (self.root / ".git").mkdir(exist_ok=True)
        return self._call("init")

    def fetch(self, ref: str) -> str:
        return self._call("fetch", ref)

    def set_author(self, name: str, email: str) -> str:
        return self._call("set_author", name, email)

    def checkout_or_orphan(self, branch: str, detach: bool) -> str:
        return self._call("checkout_or_orphan", branch, detach)

    def checkout_or_new(self, branch: str, base: str, detach: bool) -> str:
        output = self._call("checkout_or_new", branch, base, detach)
        for relative, content in self.remote.branches.get(branch, {}).items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return output

    def remove_contents(self) -> str:
        output = self._call("remove_contents")
        for child in self.root.iterdir():
            if child.name == ".git":
                continue
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink()
        return output

    def commit_and_push(self, branch: str, message: str) -> str:
        output = self._call("commit_and_push", branch, message)
        if self.remote.reject_push:
            raise VersionControlError(
                "git push failed with exit code 1",
                details={"output": "! [rejected] env/prod -> env/prod (non-fast-forward)"},
            )
        self.remote.branches[branch] = {
            str(path.relative_to(self.root)): path.read_text(encoding="utf-8")
            for path in sorted(self.root.rglob("*"))
            if path.is_file() and ".git" not in path.relative_to(self.root).parts
        }
        return output


class FakeClientFactory:
    def __init__(
        self,
        remote: FakeRemote,
        fail_on: str = "",
        on_call: Callable[[str], None] | None = None,
    ) -> None:
        self.remote = remote
        self.fail_on = fail_on
        self.on_call = on_call
        self.clients: list[FakeClient] = []
        self.connections: list[RepoConnectionInfo] = []
        self.deadlines: list[Deadline | None] = []

    def __call__(
        self,
        repo_url: str,
        root: Path,
        connection: RepoConnectionInfo,
        deadline: Deadline | None = None,
    ) -> FakeClient:
        self.connections.append(connection)
        self.deadlines.append(deadline)
        client = FakeClient(self.remote, root, fail_on=self.fail_on, on_call=self.on_call)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        return self.clients[-1]


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture()
def client_factory(remote: FakeRemote) -> FakeClientFactory:
    return FakeClientFactory(remote)


@pytest.fixture()
def workspace_root(tmp_path: Path) -> Path:
    return tmp_path / "workspaces"


@pytest.fixture()
def gauge() -> RequestGauge:
    return RequestGauge()


@pytest.fixture()
def make_service(workspace_root: Path, remote: FakeRemote, gauge: RequestGauge):
    def build(
        client_factory=None,
        credentials=None,
        root: Path | None = None,
        **factory_kwargs,
    ) -> CommitService:
        return CommitService(
            workspace_manager=WorkspaceManager(root or workspace_root),
            client_factory=client_factory or FakeClientFactory(remote, **factory_kwargs),
            credentials=credentials
            or StaticCredentialResolver("Hydrator Bot", "hydrator@example.com"),
            gauge=gauge,
        )

    return build


@pytest.fixture()
def service(make_service, client_factory: FakeClientFactory) -> CommitService:
    return make_service(client_factory=client_factory)
