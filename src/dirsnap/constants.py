"""Constants for dirsnap."""

# Snapshot file written into every directory view
DEFAULT_TARGET_NAME = "manifest.json"

# Reserved keys in a serialized snapshot
DIGEST_FIELD = "digest"
IDENTITY_FIELD = "identity"
CREATED_AT_FIELD = "createdAt"

# Configuration files (inside the snapshot root)
CONFIG_FILE = ".dirsnap.yaml"
PYPROJECT_FILE = "pyproject.toml"
PYPROJECT_SECTION = "dirsnap"

# Ignore entries applied when none are configured
DEFAULT_IGNORE = [".git", "node_modules"]

DEFAULT_MAX_WORKERS = 8
DEFAULT_SPACE = 2
DEFAULT_LOCK_TIMEOUT = 60.0
