"""Writing hydrated manifests, provenance metadata and READMEs into a workspace."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from string import Template
from typing import Any

from .constants import (
    MANIFEST_FILE_NAME,
    METADATA_FILE_NAME,
    README_FILE_NAME,
    ROOT_PATH_MARKERS,
)
from .errors import PathConstructionError, TemplateError
from .file_manager import FileManager
from .models import HydrationPath, HydratorMetadata

logger = logging.getLogger(__name__)

README_TEMPLATE = Template(
    "# Manifest Hydration\n"
    "\n"
    "To hydrate the manifests in this repository, run the following commands:\n"
    "\n"
    "```shell\n"
    "\n"
    "git clone ${repo_url}\n"
    "# cd into the cloned directory\n"
    "git checkout ${dry_sha}\n"
    "${commands}"
    "```\n"
)


def secure_join(root: Path, relative: str) -> Path:
    """Resolve ``relative`` under ``root`` or raise ``PathConstructionError``.

    Absolute paths, ``..`` segments and symlinks leading out of ``root`` are
    rejected rather than clamped, as are paths with surrounding whitespace.
    ``""`` and ``"."`` resolve to ``root``.
    """
    if "\x00" in relative:
        raise PathConstructionError(
            "Hydration path contains a NUL byte",
            details={"path": relative},
        )
    if relative != relative.strip():
        raise PathConstructionError(
            f"Hydration path '{relative}' must not have leading or trailing whitespace",
            details={"path": relative},
        )
    root_resolved = root.resolve()
    if relative in ROOT_PATH_MARKERS:
        return root_resolved
    candidate = PurePosixPath(relative)
    if candidate.is_absolute() or relative.startswith("\\"):
        raise PathConstructionError(
            f"Hydration path '{relative}' must be relative",
            details={"path": relative},
        )
    if any(part == ".." for part in candidate.parts):
        raise PathConstructionError(
            f"Hydration path '{relative}' must not contain '..'",
            details={"path": relative},
        )

    resolved = root_resolved.joinpath(*candidate.parts).resolve()
    if resolved != root_resolved and root_resolved not in resolved.parents:
        raise PathConstructionError(
            f"Hydration path '{relative}' resolves outside the workspace",
            details={"path": relative},
        )
    return resolved


def render_readme(metadata: HydratorMetadata, template: Template = README_TEMPLATE) -> str:
    """Render the hydration README for one metadata record."""
    commands: list[Any] = list(metadata.commands)
    bad = [command for command in commands if not isinstance(command, str)]
    if bad:
        raise TemplateError(f"README commands must be strings, got {type(bad[0]).__name__}")
    try:
        return template.substitute(
            repo_url=metadata.repo_url,
            dry_sha=metadata.dry_sha,
            commands="".join(f"{command}\n" for command in commands),
        )
    except (KeyError, ValueError) as exc:
        raise TemplateError(f"Unable to render README: {exc}") from exc


class HydrationWriter:
    """Place manifests and their sidecar files inside one workspace."""

    def __init__(self, root: Path, file_manager: FileManager | None = None) -> None:
        self.root = Path(root)
        self.file_manager = file_manager or FileManager()

    def write_metadata(self, metadata: HydratorMetadata, directory: Path) -> Path:
        path = directory / METADATA_FILE_NAME
        self.file_manager.write_json(path, metadata.to_document())
        return path

    def write_readme(self, metadata: HydratorMetadata, directory: Path) -> Path:
        content = render_readme(metadata)
        path = directory / README_FILE_NAME
        self.file_manager.write_text(path, content)
        return path

    def write_manifests(self, manifests: list[dict[str, Any]], directory: Path) -> Path | None:
        if not manifests:
            return None
        path = directory / MANIFEST_FILE_NAME
        self.file_manager.write_yaml_documents(path, manifests)
        return path

    def write_root_metadata(self, repo_url: str, dry_sha: str) -> Path:
        """Write the top-level provenance pointer read by the promoter."""
        return self.write_metadata(HydratorMetadata(repo_url=repo_url, dry_sha=dry_sha), self.root)

    def hydrate(self, entry: HydrationPath, repo_url: str, dry_sha: str) -> Path:
        """Write one path's manifests, metadata and README; return its directory."""
        directory = secure_join(self.root, entry.path)
        self.file_manager.ensure_directory(directory)
        logger.debug("writing %d manifests to %s", len(entry.manifests), directory)
        self.write_manifests(entry.manifests, directory)

        metadata = HydratorMetadata(commands=entry.commands, repo_url=repo_url, dry_sha=dry_sha)
        # The root keeps the command-free metadata written by write_root_metadata.
        if directory != self.root.resolve():
            self.write_metadata(metadata, directory)
        self.write_readme(metadata, directory)
        return directory
