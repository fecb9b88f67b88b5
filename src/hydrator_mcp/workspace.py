"""Allocation and teardown of per-request hydration workspaces."""

from __future__ import annotations

import logging
import shutil
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Callable

from .constants import DEFAULT_WORKSPACE_ROOT
from .errors import WorkspaceError

logger = logging.getLogger(__name__)


class WorkspaceManager:
    """Hands out uniquely named directories under a fixed root.

    The directory name is a random UUID so no caller can predict or collide
    with another request's workspace.
    """

    def __init__(
        self,
        root: str | Path = DEFAULT_WORKSPACE_ROOT,
        name_fn: Callable[[], str] | None = None,
    ) -> None:
        self.root = Path(root)
        self._name_fn = name_fn or (lambda: str(uuid.uuid4()))

    def acquire(self) -> tuple[Path, Callable[[], None]]:
        """Create a fresh workspace and return it with its release function."""
        path = self.root / self._name_fn()
        try:
            path.mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            raise WorkspaceError(
                f"Unable to create workspace {path}: {exc}",
                details={"workspace": str(path)},
            ) from exc

        def release() -> None:
            try:
                shutil.rmtree(path)
            except FileNotFoundError:
                return
            except OSError as exc:
                raise WorkspaceError(
                    f"Unable to remove workspace {path}: {exc}",
                    details={"workspace": str(path)},
                ) from exc

        return path, release

    @contextmanager
    def workspace(self) -> Iterator[Path]:
        """Yield a workspace that is removed on every exit path.

        A failed removal is logged and does not replace the outcome of the body.
        """
        path, release = self.acquire()
        try:
            yield path
        finally:
            try:
                release()
            except WorkspaceError:
                logger.error("failed to clean up workspace %s", path, exc_info=True)
