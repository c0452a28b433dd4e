"""Reconcile a fresh directory view with its previous snapshot.

Only ``createdAt`` is carried across runs. Identities always come from the
fresh view, and entries that exist only in the previous snapshot are
dropped.
"""

from pathlib import Path
from typing import Optional
import logging

from .errors import SnapshotReadError
from .manifest import FileRecord, Manifest, is_valid_created_at
from .writer import read_snapshot

logger = logging.getLogger(__name__)


def derive_created_at(path: Path) -> Optional[int]:
    """First-seen time for a file, in epoch milliseconds.

    Birth time is preferred. Many filesystems report none, or report 0,
    in which case the inode change time is used.
    """
    try:
        stat = path.stat()
    except OSError as e:
        logger.debug("Cannot stat %s for createdAt: %s", path, e)
        return None

    birth = getattr(stat, "st_birthtime", None)
    if is_valid_created_at(birth):
        return int(birth * 1000)
    if is_valid_created_at(stat.st_ctime):
        return int(stat.st_ctime * 1000)
    return None


def load_previous(target: Path) -> Optional[Manifest]:
    """Read the snapshot a view is about to replace.

    Returns None when there is nothing usable; the caller then derives
    every createdAt from the filesystem.
    """
    if not target.exists():
        logger.debug("No previous snapshot at %s", target)
        return None

    try:
        previous = read_snapshot(target)
    except SnapshotReadError as e:
        logger.warning("%s; deriving all createdAt values afresh", e)
        return None

    if previous.digest is not None and not previous.verify_digest():
        logger.warning("Previous snapshot %s fails its digest check; reusing its createdAt values anyway", target)
    return previous


def merge(fresh: Manifest, previous: Optional[Manifest], directory: Path) -> Manifest:
    """Carry stable createdAt values forward into a fresh view.

    Args:
        fresh: View computed by this run
        previous: Snapshot persisted by the last run, if readable
        directory: Directory the view's keys are relative to

    Returns:
        New manifest (without digest) with the fresh identities and
        reconciled createdAt values
    """
    files = {}
    for key, record in fresh.files.items():
        prior = previous.get(key) if previous is not None else None
        if prior is not None and is_valid_created_at(prior.created_at):
            created_at = prior.created_at
        elif record.identity is not None:
            created_at = derive_created_at(directory / key)
        else:
            # no identity, nothing to anchor a first-seen time to
            created_at = None
        files[key] = FileRecord(identity=record.identity, created_at=created_at)
    return Manifest(files=files)
