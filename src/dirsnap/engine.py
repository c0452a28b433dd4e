"""Snapshot run: walk, fingerprint, build, merge, write.

This is the stable entry point for callers. It never prints; everything
a caller may want to report comes back in the SnapshotResult.
"""

from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple
import hashlib
import logging
import tempfile

import portalocker
from pydantic import BaseModel, Field

from .builder import build_manifests, derive_views
from .config import SnapshotConfig
from .errors import LockTimeoutError, WriteError
from .fingerprint import fingerprint_all, get_fingerprinter
from .ignore import IgnoreSpec
from .manifest import Manifest
from .merger import load_previous, merge
from .walker import PathWalker, WalkError, split_dir_at_cutoff
from .writer import WriteOutcome, WriteStatus, finalize, write_snapshot

logger = logging.getLogger(__name__)


class SnapshotResult(BaseModel):
    """Everything a snapshot run produced."""

    root: Path
    manifests: Dict[str, Manifest] = Field(default_factory=dict)  # anchor -> root manifest
    outcomes: List[WriteOutcome] = Field(default_factory=list)
    walk_errors: List[WalkError] = Field(default_factory=list)
    unfingerprinted: List[str] = Field(default_factory=list)  # root-relative paths

    @property
    def written(self) -> List[WriteOutcome]:
        return [o for o in self.outcomes if o.status == WriteStatus.WRITTEN]

    @property
    def failed(self) -> List[WriteOutcome]:
        return [o for o in self.outcomes if o.status == WriteStatus.FAILED]

    @property
    def ok(self) -> bool:
        """True when every target was written or deliberately skipped."""
        return not self.failed


def lock_path_for(root: Path) -> Path:
    """Per-root lock file, kept out of the walked tree."""
    key = hashlib.sha256(str(root).encode("utf-8")).hexdigest()[:16]
    return Path(tempfile.gettempdir()) / f"dirsnap-{key}.lock"


@contextmanager
def run_lock(root: Path, timeout: float) -> Iterator[None]:
    """Serialize runs against the same root across processes."""
    lock = portalocker.Lock(str(lock_path_for(root)), "w", timeout=timeout)
    try:
        lock.acquire()
    except portalocker.LockException as e:
        raise LockTimeoutError(root, timeout) from e
    try:
        yield
    finally:
        lock.release()


def _persist(directory: Path, view: Manifest, config: SnapshotConfig) -> Tuple[WriteOutcome, Optional[Manifest]]:
    """Read previous, merge, write - for a single directory view.

    A failure here is confined to this view: it comes back as a FAILED
    outcome with no manifest.
    """
    target = directory / config.target_name
    try:
        merged = merge(view, load_previous(target), directory)
        outcome = write_snapshot(merged, target, config.write_policy, config.space)
        final = finalize(merged)
    except (WriteError, OSError, ValueError) as e:
        logger.error("Snapshot of %s failed: %s", directory, e)
        return WriteOutcome(target=target, status=WriteStatus.FAILED, files=len(view), error=str(e)), None
    return outcome, final


def run_snapshot(config: SnapshotConfig) -> SnapshotResult:
    """Snapshot ``config.root`` and persist one manifest per directory.

    Args:
        config: Validated snapshot configuration

    Returns:
        SnapshotResult with the root manifests and per-target outcomes

    Raises:
        InvalidRootError: If the root is not a directory
        LockTimeoutError: If another run for the same root holds the lock
    """
    walker = PathWalker(
        config.root,
        IgnoreSpec(config.ignore),
        cutoff=config.cutoff,
        extension=config.extension,
        exclude_names=[config.target_name],
        max_workers=config.max_workers,
    )
    root = walker.root

    with run_lock(root, config.lock_timeout):
        fingerprinter = get_fingerprinter(config.strategy)
        fingerprints = fingerprint_all(
            walker.walk(), fingerprinter, config.max_workers, path_of=lambda entry: entry.path
        )
        unfingerprinted = sorted(entry.relpath for entry, identity in fingerprints if identity is None)
        manifests = build_manifests(fingerprints)

        # Directories that already hold a snapshot are rewritten even if now empty
        existing: Dict[str, Set[str]] = {}
        for dirrel in walker.target_dirs:
            split = split_dir_at_cutoff(dirrel, config.cutoff)
            if split is not None:
                anchor, directory = split
                existing.setdefault(anchor, set()).add(directory)
                manifests.setdefault(anchor, Manifest())
        if config.cutoff == 0:
            manifests.setdefault("", Manifest())

        jobs: List[Tuple[str, str, Manifest]] = []
        for anchor in sorted(manifests):
            views = derive_views(manifests[anchor], existing.get(anchor, ()))
            jobs.extend((anchor, directory, view) for directory, view in views.items())
        logger.info("Snapshotting %d files into %d directory views", len(fingerprints), len(jobs))

        with ThreadPoolExecutor(max_workers=config.max_workers) as pool:
            results = list(pool.map(lambda job: _persist(root / job[0] / job[1], job[2], config), jobs))

    result = SnapshotResult(
        root=root,
        walk_errors=list(walker.errors),
        unfingerprinted=unfingerprinted,
    )
    for (anchor, directory, _), (outcome, final) in zip(jobs, results):
        result.outcomes.append(outcome)
        if directory == "" and final is not None:
            result.manifests[anchor] = final
    return result
