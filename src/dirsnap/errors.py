"""Custom exceptions for dirsnap.

Only configuration errors are fatal to a whole run. Traversal and
fingerprint failures are recorded on the run result instead of raised;
write failures are raised per target and collected by the engine.
"""

from pathlib import Path


class SnapshotError(RuntimeError):
    """Base class for all dirsnap errors."""
    pass


# Configuration Errors
class ConfigError(SnapshotError):
    """Invalid or unreadable configuration."""
    pass


class InvalidRootError(ConfigError):
    """Snapshot root does not exist or is not a directory."""

    def __init__(self, root: Path):
        self.root = root
        super().__init__(f"Snapshot root '{root}' does not exist or is not a directory")


# Snapshot Errors
class SnapshotReadError(SnapshotError):
    """A persisted snapshot is missing or malformed."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read snapshot {path}: {reason}")


class WriteError(SnapshotError):
    """Writing a snapshot target failed (disk full, permission denied...)."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write snapshot {path}: {reason}")


# Integrity Errors
class DigestMismatchError(SnapshotError):
    """Stored snapshot digest doesn't match its content."""

    def __init__(self, path: Path, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Digest verification failed for {path}\n"
            f"  Stored:   {expected}\n"
            f"  Computed: {actual}\n"
            f"The snapshot was edited by hand or is corrupted."
        )


# Concurrency Errors
class LockTimeoutError(SnapshotError):
    """Another run holds the lock for this root."""

    def __init__(self, root: Path, timeout: float):
        self.root = root
        self.timeout = timeout
        super().__init__(
            f"Another snapshot run for '{root}' did not finish within {timeout:g}s"
        )
