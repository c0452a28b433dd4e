"""Hashing utilities for file fingerprints and snapshot digests.

File digests hash raw bytes. Snapshot digests hash a canonical JSON
rendering of the manifest mapping, so the result does not depend on the
order in which files were discovered.
"""

from pathlib import Path
from typing import Any, Mapping
import hashlib
import json

from .constants import DIGEST_FIELD


def compute_file_digest(path: Path) -> str:
    """Compute SHA256 hash of file contents.

    Simple byte-for-byte hashing - any change invalidates the digest.

    Args:
        path: Path to file to hash

    Returns:
        SHA256 digest in format "sha256:xxxx"
    """
    sha256 = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return f"sha256:{sha256.hexdigest()}"


def canonical_json(data: Mapping[str, Any]) -> str:
    """Render a mapping as canonical JSON.

    Keys are sorted at every level and no insignificant whitespace is
    emitted, so equal mappings always render to identical text.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_manifest_digest(data: Mapping[str, Any]) -> str:
    """Compute the digest of a serialized manifest mapping.

    Any existing ``digest`` entry is left out of the input, so recomputing
    over an already-digested mapping gives the same value.

    Args:
        data: Mapping of relative path to record dict, optionally
            carrying a ``digest`` entry

    Returns:
        SHA256 digest in format "sha256:xxxx"

    Example:
        >>> a = compute_manifest_digest({"x.txt": {"identity": 1}})
        >>> b = compute_manifest_digest({"x.txt": {"identity": 1}, "digest": a})
        >>> a == b
        True
    """
    content = {key: value for key, value in data.items() if key != DIGEST_FIELD}
    sha256 = hashlib.sha256(canonical_json(content).encode("utf-8"))
    return f"sha256:{sha256.hexdigest()}"


__all__ = [
    "canonical_json",
    "compute_file_digest",
    "compute_manifest_digest",
]
