"""Snapshot persistence: digest, render, atomic write, read back."""

from enum import Enum
from pathlib import Path
from typing import Optional
import json
import logging
import os
import tempfile

from pydantic import BaseModel

from .errors import DigestMismatchError, SnapshotReadError, WriteError
from .manifest import Manifest

logger = logging.getLogger(__name__)


class WritePolicy(str, Enum):
    """When a snapshot target may be written."""

    ALWAYS = "always"        # create or overwrite
    IF_EXISTS = "if-exists"  # only overwrite targets that are already there


class WriteStatus(str, Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"
    FAILED = "failed"


class WriteOutcome(BaseModel):
    """Result of persisting one directory view."""

    target: Path
    status: WriteStatus
    files: int = 0
    digest: Optional[str] = None
    error: Optional[str] = None


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically write text to file with crash safety.

    1. Writes to temp file with fsync to ensure content is on disk
    2. Atomic rename to target path (appears all-at-once)
    3. Fsync parent directory to ensure rename is durable

    Directory fsync is best-effort (not supported on Windows).

    Args:
        path: Target file path
        text: Text content to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Create temp file in same directory
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
        suffix=""
    ) as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
        tmp = Path(f.name)

    try:
        # Atomic rename
        os.replace(tmp, path)

        try:
            # Use O_DIRECTORY flag if available (Linux)
            flags = os.O_RDONLY
            if hasattr(os, "O_DIRECTORY"):
                flags |= os.O_DIRECTORY

            dirfd = os.open(str(path.parent), flags)
            try:
                os.fsync(dirfd)
            finally:
                os.close(dirfd)
        except OSError:
            # The file write is still atomic and durable (via file fsync above)
            pass
    except BaseException:
        # Clean up temp file on any error
        tmp.unlink(missing_ok=True)
        raise


def finalize(manifest: Manifest) -> Manifest:
    """Drop any stale digest and attach one computed over the records."""
    return manifest.without_digest().with_digest()


def write_snapshot(
    manifest: Manifest,
    target: Path,
    policy: WritePolicy = WritePolicy.ALWAYS,
    space: Optional[int] = None,
) -> WriteOutcome:
    """Finalize ``manifest`` and write it to ``target``.

    Args:
        manifest: Merged directory view
        target: Snapshot file path
        policy: ALWAYS, or IF_EXISTS to leave directories without a
            snapshot untouched
        space: JSON indentation; None or 0 for compact output

    Returns:
        WriteOutcome with status WRITTEN or SKIPPED

    Raises:
        WriteError: If the file cannot be written
    """
    if policy == WritePolicy.IF_EXISTS and not target.exists():
        logger.debug("No snapshot at %s, skipping (policy %s)", target, policy.value)
        return WriteOutcome(target=target, status=WriteStatus.SKIPPED, files=len(manifest))

    final = finalize(manifest)
    try:
        atomic_write_text(target, final.render(space))
    except OSError as e:
        raise WriteError(target, e.strerror or str(e)) from e

    logger.info("Wrote %s (%d files, %s)", target, len(final), final.digest)
    return WriteOutcome(target=target, status=WriteStatus.WRITTEN, files=len(final), digest=final.digest)


def read_snapshot(target: Path) -> Manifest:
    """Load a persisted snapshot.

    Raises:
        SnapshotReadError: If the file is missing, unreadable or malformed
    """
    try:
        text = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise SnapshotReadError(target, "file not found")
    except (OSError, UnicodeDecodeError) as e:
        raise SnapshotReadError(target, str(e)) from e

    try:
        return Manifest.from_mapping(json.loads(text))
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too
        raise SnapshotReadError(target, f"malformed snapshot: {e}") from e


def verify_snapshot(target: Path) -> Manifest:
    """Check a persisted snapshot against its stored digest.

    Returns:
        The verified manifest

    Raises:
        SnapshotReadError: If the snapshot cannot be read
        DigestMismatchError: If the digest is missing or wrong
    """
    manifest = read_snapshot(target)
    computed = manifest.compute_digest()
    if manifest.digest != computed:
        raise DigestMismatchError(target, manifest.digest or "(none)", computed)
    return manifest
