"""Project-wide constants for the hydrator commit service."""

DEFAULT_WORKSPACE_ROOT = "/tmp/_commit-service"
METADATA_FILE_NAME = "hydrator.metadata"
README_FILE_NAME = "README.md"
MANIFEST_FILE_NAME = "manifest.yaml"

ROOT_PATH_MARKERS = ("", ".")
DEFAULT_REMOTE = "origin"
DEFAULT_GIT_TIMEOUT_SECONDS = 300.0
ORPHAN_INITIAL_COMMIT_MESSAGE = "Initial commit"
