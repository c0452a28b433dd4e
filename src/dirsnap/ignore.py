"""Ignore-list matching for the path walker.

Plain entries match by path-segment prefix against the root-relative
POSIX path: ``a/b`` ignores ``a/b`` and everything below it, but not
``a/bc``. A leading ``./`` and trailing ``/`` are dropped, so ``./.git``,
``.git/`` and ``.git`` are the same entry.

Entries containing glob characters (``*``, ``?``, ``[``) are compiled as
gitignore-style patterns instead. Nothing is ever matched as a substring.
"""

from typing import Iterable, List

from pathspec import PathSpec

GLOB_CHARS = frozenset("*?[")


def normalize_entry(entry: str) -> str:
    """Normalize an ignore entry to a root-relative POSIX prefix."""
    entry = entry.strip().replace("\\", "/")
    while entry.startswith("./"):
        entry = entry[2:]
    return entry.strip("/")


def is_glob(entry: str) -> bool:
    """Check whether an entry should be treated as a glob pattern."""
    return any(ch in GLOB_CHARS for ch in entry)


class IgnoreSpec:
    """Compiled ignore list."""

    def __init__(self, entries: Iterable[str] = ()):
        """Initialize from raw ignore entries.

        Args:
            entries: Prefix entries and/or gitignore-style glob patterns
        """
        self.prefixes: List[str] = []
        patterns: List[str] = []

        for raw in entries:
            entry = normalize_entry(raw)
            if not entry:
                continue
            if is_glob(entry):
                patterns.append(entry)
            else:
                self.prefixes.append(entry)

        # Compile patterns once for efficiency
        self.spec = PathSpec.from_lines("gitwildmatch", patterns)

    def is_ignored(self, relpath: str) -> bool:
        """Check if a root-relative POSIX path should be ignored.

        Args:
            relpath: Root-relative path in POSIX format (forward slashes)

        Returns:
            True if the path or one of its ancestors matches an entry
        """
        relpath = relpath.strip("/")
        for prefix in self.prefixes:
            if relpath == prefix or relpath.startswith(prefix + "/"):
                return True
        return self.spec.match_file(relpath)

    def should_traverse(self, dirpath: str) -> bool:
        """Check if a directory should be descended into.

        Args:
            dirpath: Root-relative directory path in POSIX format

        Returns:
            True if the directory should be traversed
        """
        if self.is_ignored(dirpath):
            return False
        # Add trailing slash to match directory-only glob patterns
        return not self.spec.match_file(dirpath.strip("/") + "/")
