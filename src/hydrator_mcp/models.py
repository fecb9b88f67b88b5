"""Pydantic models for hydrator tool inputs and outputs."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RepoConnectionInfo(BaseModel):
    """How to reach the hydrated repository and who commits to it."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    repo: str = ""
    username: str = ""
    password: str = Field(default="", repr=False)
    insecure: bool = False
    proxy: str = ""
    author_name: str = Field(default="", alias="authorName")
    author_email: str = Field(default="", alias="authorEmail")

    @property
    def has_basic_auth(self) -> bool:
        return bool(self.username and self.password)


class HydrationPath(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str = ""
    manifests: list[dict[str, Any]] = Field(default_factory=list)
    commands: list[str] = Field(default_factory=list)


class CommitRequest(BaseModel):
    """One hydration commit: manifests for every path plus the target branch."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    repo_url: str = Field(..., alias="repoURL", min_length=1)
    target_branch: str = Field(..., alias="targetBranch", min_length=1)
    sync_branch: str = Field(..., alias="syncBranch", min_length=1)
    dry_sha: str = Field(..., alias="drySha", min_length=1)
    commit_message: str = Field(..., alias="commitMessage", min_length=1)
    paths: list[HydrationPath] = Field(default_factory=list)
    repo: RepoConnectionInfo = Field(
        default_factory=RepoConnectionInfo, alias="repoConnectionInfo"
    )

    @field_validator("repo_url", "target_branch", "sync_branch", "dry_sha", "commit_message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("value must not be blank")
        return stripped


class HydratorMetadata(BaseModel):
    """Provenance sidecar written next to hydrated manifests."""

    model_config = ConfigDict(populate_by_name=True)

    commands: list[str] = Field(default_factory=list)
    repo_url: str = Field(default="", alias="repoURL")
    dry_sha: str = Field(default="", alias="drySha")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BaseToolResponse(BaseModel):
    status: Literal["success", "error"]
    message: str = ""
    error_code: str = ""
    suggestion: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class CommitResponse(BaseToolResponse):
    target_branch: str = ""
    dry_sha: str = ""
    paths_written: int = 0
