"""Fingerprint strategies.

A fingerprint is the identity value recorded for a file. It changes if
and only if the file counts as changed under the active strategy. One
strategy is chosen per run.

Every fingerprinter returns ``None`` instead of raising: a file that
cannot be fingerprinted is still recorded, with a null identity.
"""

from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar, Union
import logging
import subprocess

from .constants import DEFAULT_MAX_WORKERS
from .hashing import compute_file_digest

logger = logging.getLogger(__name__)

Identity = Union[int, str]
Fingerprinter = Callable[[Path], Optional[Identity]]
T = TypeVar("T")


class Strategy(str, Enum):
    """How a file's identity is computed."""

    MTIME = "mtime"
    CONTENT = "content"
    GIT_BLOB = "git-blob"
    GIT_COMMIT = "git-commit"


def mtime_fingerprint(path: Path) -> Optional[Identity]:
    """Last-modified time in epoch milliseconds."""
    try:
        return path.stat().st_mtime_ns // 1_000_000
    except OSError as e:
        logger.warning("Cannot stat %s: %s", path, e)
        return None


def content_fingerprint(path: Path) -> Optional[Identity]:
    """SHA256 of the file's bytes."""
    try:
        return compute_file_digest(path)
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        return None


def _run_git(path: Path, *args: str) -> Optional[str]:
    """Run a git command next to ``path`` and return its stripped stdout.

    Returns None when git is missing, exits non-zero or prints nothing.
    """
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=path.parent,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        logger.warning("Cannot run git for %s: %s", path, e)
        return None

    if result.returncode != 0:
        error_msg = result.stderr.strip() or result.stdout.strip()
        logger.warning("git %s failed for %s: %s", args[0], path, error_msg)
        return None

    output = result.stdout.strip()
    return output or None


def git_blob_fingerprint(path: Path) -> Optional[Identity]:
    """Blob hash of the working-tree content of a tracked file.

    Untracked files have no blob identity and yield None.
    """
    if _run_git(path, "ls-files", "--error-unmatch", "--", path.name) is None:
        return None
    return _run_git(path, "hash-object", "--", path.name)


def git_commit_fingerprint(path: Path) -> Optional[Identity]:
    """Hash of the most recent commit that touched the file."""
    commit = _run_git(path, "log", "-1", "--format=%H", "--", path.name)
    if commit is None:
        logger.warning("No commit history for %s", path)
    return commit


_FINGERPRINTERS = {
    Strategy.MTIME: mtime_fingerprint,
    Strategy.CONTENT: content_fingerprint,
    Strategy.GIT_BLOB: git_blob_fingerprint,
    Strategy.GIT_COMMIT: git_commit_fingerprint,
}


def get_fingerprinter(strategy: Union[Strategy, str]) -> Fingerprinter:
    """Return the fingerprint function for ``strategy``.

    Raises:
        ValueError: If the strategy name is unknown
    """
    return _FINGERPRINTERS[Strategy(strategy)]


def fingerprint_all(
    paths: Iterable[T],
    fingerprinter: Fingerprinter,
    max_workers: int = DEFAULT_MAX_WORKERS,
    path_of: Callable[[T], Path] = lambda item: item,
) -> List[Tuple[T, Optional[Identity]]]:
    """Fingerprint many files in parallel.

    Args:
        paths: Items to fingerprint (paths, or anything ``path_of`` maps to a path)
        fingerprinter: Strategy function from get_fingerprinter()
        max_workers: Number of parallel workers
        path_of: Extracts the file path from an item

    Returns:
        (item, identity) pairs; identity is None where fingerprinting failed
    """
    def compute_one(item: T) -> Tuple[T, Optional[Identity]]:
        return item, fingerprinter(path_of(item))

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(compute_one, item) for item in paths]
        return [future.result() for future in futures]
