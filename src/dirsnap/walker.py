"""Ignore-aware recursive traversal of a snapshot root.

Directory listings run on a bounded thread pool and are joined as they
complete, so sibling order is unspecified. A listing or stat failure is
recorded against that one entry and the walk carries on.
"""

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Tuple
import logging
import os
import threading

from .constants import DEFAULT_MAX_WORKERS
from .errors import InvalidRootError
from .ignore import IgnoreSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalkEntry:
    """A file found by the walker."""
    path: Path     # absolute path on disk
    relpath: str   # root-relative POSIX path
    anchor: str    # leading directories stripped by the cutoff ("" for none)
    key: str       # path relative to the anchor


@dataclass(frozen=True)
class WalkError:
    """A directory entry that could not be examined."""
    path: str
    message: str


def split_at_cutoff(relpath: str, cutoff: int) -> Optional[Tuple[str, str]]:
    """Split a root-relative path into (anchor, key).

    Returns None for files that sit at or above the cutoff depth.

    Examples:
        >>> split_at_cutoff("a/b/c.txt", 1)
        ('a', 'b/c.txt')
        >>> split_at_cutoff("top.txt", 1) is None
        True
    """
    parts = relpath.split("/")
    if len(parts) <= cutoff:
        return None
    return "/".join(parts[:cutoff]), "/".join(parts[cutoff:])


def split_dir_at_cutoff(dirrel: str, cutoff: int) -> Optional[Tuple[str, str]]:
    """Split a root-relative directory into (anchor, directory within anchor).

    Returns None for directories above the cutoff depth.
    """
    parts = dirrel.split("/") if dirrel else []
    if len(parts) < cutoff:
        return None
    return "/".join(parts[:cutoff]), "/".join(parts[cutoff:])


def _is_utf8(name: str) -> bool:
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _printable_path(relpath: str) -> str:
    """Render a path with undecodable bytes escaped as \\xNN."""
    return os.fsencode(relpath).decode("utf-8", "backslashreplace")


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


class PathWalker:
    """Single-use traversal of one root."""

    def __init__(
        self,
        root: Path,
        ignore: Optional[IgnoreSpec] = None,
        cutoff: int = 0,
        extension: Optional[str] = None,
        exclude_names: Iterable[str] = (),
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """Initialize the walker.

        Args:
            root: Directory to walk
            ignore: Compiled ignore list
            cutoff: Leading directory segments stripped from keys
            extension: Only yield files whose name ends with this suffix
            exclude_names: File names never yielded (snapshot targets)
            max_workers: Concurrent directory listings

        Raises:
            InvalidRootError: If root is not an existing directory
        """
        root = Path(root)
        if not root.is_dir():
            raise InvalidRootError(root)
        self.root = root.resolve()
        self.ignore = ignore or IgnoreSpec()
        self.cutoff = cutoff
        self.extension = extension
        self.exclude_names: Set[str] = set(exclude_names)
        self.max_workers = max_workers
        self.errors: List[WalkError] = []
        self.target_dirs: Set[str] = set()  # root-relative dirs holding an excluded file
        self._lock = threading.Lock()

    def walk(self) -> Iterator[WalkEntry]:
        """Yield every non-ignored file under the root."""
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            pending: Set[Future] = {pool.submit(self._scan, self.root, "")}
            while pending:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    files, subdirs = future.result()
                    for dirpath, dirrel in subdirs:
                        pending.add(pool.submit(self._scan, dirpath, dirrel))
                    yield from files

    def _record(self, relpath: str, message: str) -> None:
        logger.warning("Skipping %s: %s", relpath, message)
        with self._lock:
            self.errors.append(WalkError(relpath, message))

    def _scan(self, dirpath: Path, dirrel: str) -> Tuple[List[WalkEntry], List[Tuple[Path, str]]]:
        """List one directory; returns (files, subdirectories to descend)."""
        files: List[WalkEntry] = []
        subdirs: List[Tuple[Path, str]] = []

        try:
            with os.scandir(dirpath) as it:
                entries = list(it)
        except OSError as e:
            self._record(dirrel or ".", e.strerror or str(e))
            return files, subdirs

        for entry in entries:
            relpath = f"{dirrel}/{entry.name}" if dirrel else entry.name
            if not _is_utf8(entry.name):
                # undecodable bytes arrive as lone surrogates and cannot be serialized
                if not self.ignore.is_ignored(relpath):
                    self._record(_printable_path(relpath), "name is not valid UTF-8")
                continue
            try:
                if entry.is_symlink():
                    if self.ignore.is_ignored(relpath):
                        continue
                    self._scan_symlink(Path(entry.path), relpath, files)
                elif entry.is_dir(follow_symlinks=False):
                    if self.ignore.should_traverse(relpath):
                        subdirs.append((Path(entry.path), relpath))
                elif entry.is_file(follow_symlinks=False):
                    if entry.name in self.exclude_names:
                        with self._lock:
                            self.target_dirs.add(dirrel)
                        continue
                    walked = self._accept_file(Path(entry.path), relpath)
                    if walked:
                        files.append(walked)
            except OSError as e:
                self._record(relpath, e.strerror or str(e))

        return files, subdirs

    def _scan_symlink(self, path: Path, relpath: str, files: List[WalkEntry]) -> None:
        """Links are resolved and must stay inside the root.

        Links into ignored paths are skipped and linked directories are not
        descended.
        """
        target = path.resolve()
        if not _is_within(target, self.root):
            self._record(relpath, f"symlink points outside root ({target})")
        elif self.ignore.is_ignored(target.relative_to(self.root).as_posix()):
            logger.debug("Skipping %s: symlink into ignored path", relpath)
        elif not target.exists():
            self._record(relpath, "broken symlink")
        elif target.is_dir():
            logger.debug("Not descending into symlinked directory %s", relpath)
        else:
            walked = self._accept_file(path, relpath)
            if walked:
                files.append(walked)

    def _accept_file(self, path: Path, relpath: str) -> Optional[WalkEntry]:
        if path.name in self.exclude_names:
            return None
        if self.extension and not path.name.endswith(self.extension):
            return None
        if self.ignore.is_ignored(relpath):
            return None
        split = split_at_cutoff(relpath, self.cutoff)
        if split is None:
            return None
        anchor, key = split
        return WalkEntry(path=path, relpath=relpath, anchor=anchor, key=key)


def walk(
    root: Path,
    ignore: Iterable[str] = (),
    cutoff: int = 0,
    extension: Optional[str] = None,
    **kwargs,
) -> Iterator[WalkEntry]:
    """Walk ``root`` with a plain ignore list.

    Convenience wrapper around PathWalker for callers that don't need the
    recorded walk errors.
    """
    walker = PathWalker(root, IgnoreSpec(ignore), cutoff=cutoff, extension=extension, **kwargs)
    return walker.walk()
