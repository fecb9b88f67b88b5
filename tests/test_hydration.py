from __future__ import annotations

import json
from pathlib import Path
from string import Template

import pytest
import yaml

from hydrator_mcp.errors import ErrorCode, PathConstructionError, TemplateError, WriteError
from hydrator_mcp.file_manager import FileManager
from hydrator_mcp.hydration import HydrationWriter, render_readme, secure_join
from hydrator_mcp.models import HydrationPath, HydratorMetadata

REPO_URL = "https://git.example.com/org/dry.git"


def test_render_readme_matches_layout() -> None:
    metadata = HydratorMetadata(
        commands=["kustomize build .", "helm template ."],
        repo_url=REPO_URL,
        dry_sha="deadbeef",
    )

    assert render_readme(metadata) == (
        "# Manifest Hydration\n"
        "\n"
        "To hydrate the manifests in this repository, run the following commands:\n"
        "\n"
        "```shell\n"
        "\n"
        f"git clone {REPO_URL}\n"
        "# cd into the cloned directory\n"
        "git checkout deadbeef\n"
        "kustomize build .\n"
        "helm template .\n"
        "```\n"
    )


def test_render_readme_without_commands_closes_fence() -> None:
    content = render_readme(HydratorMetadata(repo_url=REPO_URL, dry_sha="abc"))

    assert content.endswith("git checkout abc\n```\n")


def test_render_readme_is_deterministic() -> None:
    metadata = HydratorMetadata(commands=["a"], repo_url=REPO_URL, dry_sha="abc")

    assert render_readme(metadata) == render_readme(metadata)


def test_render_readme_rejects_non_string_commands() -> None:
    metadata = HydratorMetadata.model_construct(commands=[1], repo_url=REPO_URL, dry_sha="abc")

    with pytest.raises(TemplateError) as exc_info:
        render_readme(metadata)

    assert exc_info.value.code == ErrorCode.TEMPLATE_ERROR


def test_render_readme_reports_broken_template() -> None:
    metadata = HydratorMetadata(repo_url=REPO_URL, dry_sha="abc")

    with pytest.raises(TemplateError):
        render_readme(metadata, template=Template("${missing}"))


@pytest.mark.parametrize("relative", ["", "."])
def test_secure_join_root_markers(tmp_path: Path, relative: str) -> None:
    assert secure_join(tmp_path, relative) == tmp_path.resolve()


def test_secure_join_nested_path(tmp_path: Path) -> None:
    assert secure_join(tmp_path, "apps/foo") == tmp_path.resolve() / "apps" / "foo"
    assert secure_join(tmp_path, "./apps//foo/") == tmp_path.resolve() / "apps" / "foo"


@pytest.mark.parametrize(
    "relative",
    ["../../etc", "apps/../..", "..", "/etc/passwd", "\\windows\\system32", "apps/\x00evil"],
)
def test_secure_join_rejects_escapes(tmp_path: Path, relative: str) -> None:
    with pytest.raises(PathConstructionError) as exc_info:
        secure_join(tmp_path, relative)

    assert exc_info.value.details["path"] == relative


@pytest.mark.parametrize("relative", [" . ", "apps/foo ", " apps/foo", "apps/foo\n"])
def test_secure_join_rejects_surrounding_whitespace(tmp_path: Path, relative: str) -> None:
    with pytest.raises(PathConstructionError, match="whitespace"):
        secure_join(tmp_path, relative)

    assert not (tmp_path / "apps").exists()


def test_secure_join_rejects_symlink_out_of_root(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    outside = tmp_path / "outside"
    root.mkdir()
    outside.mkdir()
    (root / "link").symlink_to(outside, target_is_directory=True)

    with pytest.raises(PathConstructionError):
        secure_join(root, "link/apps")


def test_hydrate_writes_manifests_metadata_and_readme(tmp_path: Path) -> None:
    writer = HydrationWriter(tmp_path)
    manifests = [
        {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "a"}},
        {"apiVersion": "v1", "kind": "Secret", "metadata": {"name": "b"}},
    ]

    directory = writer.hydrate(
        HydrationPath(path="apps/foo", manifests=manifests, commands=["kustomize build"]),
        REPO_URL,
        "abc123",
    )

    assert directory == tmp_path.resolve() / "apps" / "foo"
    manifest_text = (directory / "manifest.yaml").read_text(encoding="utf-8")
    assert manifest_text.startswith("---\napiVersion: v1\nkind: ConfigMap\n")
    assert list(yaml.safe_load_all(manifest_text)) == manifests
    assert json.loads((directory / "hydrator.metadata").read_text(encoding="utf-8")) == {
        "commands": ["kustomize build"],
        "repoURL": REPO_URL,
        "drySha": "abc123",
    }
    assert "kustomize build\n```" in (directory / "README.md").read_text(encoding="utf-8")


def test_metadata_is_indented_json(tmp_path: Path) -> None:
    writer = HydrationWriter(tmp_path)
    path = writer.write_root_metadata(REPO_URL, "abc123")

    assert path == tmp_path / "hydrator.metadata"
    assert path.read_text(encoding="utf-8") == (
        '{\n   "commands": [],\n   "repoURL": "' + REPO_URL + '",\n   "drySha": "abc123"\n}'
    )


def test_hydrate_without_manifests_skips_manifest_file(tmp_path: Path) -> None:
    directory = HydrationWriter(tmp_path).hydrate(
        HydrationPath(path="empty", commands=["echo"]), REPO_URL, "abc"
    )

    assert not (directory / "manifest.yaml").exists()
    assert (directory / "hydrator.metadata").exists()
    assert (directory / "README.md").exists()


def test_hydrate_root_keeps_root_metadata(tmp_path: Path) -> None:
    writer = HydrationWriter(tmp_path)
    writer.write_root_metadata(REPO_URL, "abc")

    writer.hydrate(HydrationPath(path=".", commands=["kustomize build"]), REPO_URL, "abc")

    root_metadata = json.loads((tmp_path / "hydrator.metadata").read_text(encoding="utf-8"))
    assert root_metadata["commands"] == []
    assert "kustomize build" in (tmp_path / "README.md").read_text(encoding="utf-8")


def test_file_manager_wraps_os_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(WriteError) as exc_info:
        FileManager().write_text(blocker / "nested" / "README.md", "content")

    assert exc_info.value.code == ErrorCode.WRITE_ERROR


def test_file_manager_rejects_unserializable_json(tmp_path: Path) -> None:
    with pytest.raises(WriteError):
        FileManager().write_json(tmp_path / "hydrator.metadata", {"when": object()})


def test_file_manager_rejects_unserializable_yaml(tmp_path: Path) -> None:
    with pytest.raises(WriteError):
        FileManager().write_yaml_documents(tmp_path / "manifest.yaml", [{"obj": object()}])
