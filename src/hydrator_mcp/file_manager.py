"""Low-level file system helpers used by the hydration writer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .errors import WriteError


class FileManager:
    """Wrapper around the text, JSON and YAML writes a hydration performs."""

    def ensure_directory(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WriteError(
                f"Unable to create directory {path}: {exc}",
                details={"path": str(path)},
            ) from exc

    def write_text(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise WriteError(
                f"Unable to write {path}: {exc}",
                details={"path": str(path)},
            ) from exc

    def write_json(self, path: Path, payload: dict[str, Any]) -> None:
        try:
            content = json.dumps(payload, indent=3)
        except (TypeError, ValueError) as exc:
            raise WriteError(
                f"Unable to serialize {path.name}: {exc}",
                details={"path": str(path)},
            ) from exc
        self.write_text(path, content)

    def write_yaml_documents(self, path: Path, documents: list[dict[str, Any]]) -> None:
        try:
            content = yaml.safe_dump_all(
                documents,
                sort_keys=False,
                allow_unicode=False,
                explicit_start=True,
            )
        except yaml.YAMLError as exc:
            raise WriteError(
                f"Unable to serialize manifests for {path}: {exc}",
                details={"path": str(path)},
            ) from exc
        self.write_text(path, content)
