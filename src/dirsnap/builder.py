"""Aggregate fingerprints into root manifests and per-directory views.

A file at ``a/b/c.txt`` appears in the views for ``""``, ``a`` and
``a/b`` as ``a/b/c.txt``, ``b/c.txt`` and ``c.txt``. Every directory
therefore carries a self-contained manifest of everything beneath it.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from .fingerprint import Identity
from .manifest import FileRecord, Manifest
from .walker import WalkEntry


def build_manifests(
    fingerprints: Iterable[Tuple[WalkEntry, Optional[Identity]]],
) -> Dict[str, Manifest]:
    """Group fingerprinted files into one root manifest per anchor.

    With no cutoff every entry shares the empty anchor and a single
    manifest is returned under the key ``""``.
    """
    grouped: Dict[str, Dict[str, FileRecord]] = {}
    for entry, identity in fingerprints:
        grouped.setdefault(entry.anchor, {})[entry.key] = FileRecord(identity=identity)
    return {anchor: Manifest(files=files) for anchor, files in grouped.items()}


def ancestor_dirs(key: str) -> List[str]:
    """Directories that contain ``key``, from the root down.

    Example:
        >>> ancestor_dirs("a/b/c.txt")
        ['', 'a', 'a/b']
    """
    parts = key.split("/")[:-1]
    return [""] + ["/".join(parts[:i]) for i in range(1, len(parts) + 1)]


def derive_views(manifest: Manifest, extra_dirs: Iterable[str] = ()) -> Dict[str, Manifest]:
    """One re-rooted manifest per directory that holds at least one file.

    The root view and every directory in ``extra_dirs`` (directories that
    already hold a snapshot) get a view even when they are now empty, so
    files deleted from them drop out of their snapshots.
    """
    directories = {""}
    directories.update(extra_dirs)
    for key in manifest.files:
        directories.update(ancestor_dirs(key))
    return {directory: manifest.view(directory) for directory in sorted(directories)}
