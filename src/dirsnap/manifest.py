"""Manifest data model.

A manifest maps forward-slash paths, relative to the directory that owns
the manifest, to file records. On disk it is a flat JSON object with one
entry per path plus a trailing ``digest`` string:

    {
      "a/b.txt": {"createdAt": 1700000000000, "identity": 1700000000123},
      "c.txt": {"identity": null},
      "digest": "sha256:..."
    }
"""

from typing import Any, Dict, Mapping, Optional, Union
import json
import logging
import math

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import CREATED_AT_FIELD, DIGEST_FIELD, IDENTITY_FIELD
from .hashing import compute_manifest_digest

logger = logging.getLogger(__name__)


def is_valid_created_at(value: Any) -> bool:
    """A usable createdAt is a finite, positive number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value) and value > 0
    except OverflowError:
        # integers beyond float range
        return False


class FileRecord(BaseModel):
    """Fingerprint entry for a single file."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    identity: Optional[Union[int, str]] = None  # None when fingerprinting failed
    created_at: Optional[float] = Field(default=None, alias=CREATED_AT_FIELD)

    def to_json(self) -> Dict[str, Any]:
        """Serialize with ``identity`` always present and ``createdAt`` only when set."""
        data: Dict[str, Any] = {IDENTITY_FIELD: self.identity}
        if self.created_at is not None:
            created = self.created_at
            data[CREATED_AT_FIELD] = int(created) if float(created).is_integer() else created
        return dict(sorted(data.items()))


class Manifest(BaseModel):
    """Mapping of relative path to FileRecord, with an optional digest.

    Manifests are treated as values: helpers that change records return a
    new manifest whose digest is cleared.
    """

    files: Dict[str, FileRecord] = Field(default_factory=dict)
    digest: Optional[str] = None

    def __len__(self) -> int:
        return len(self.files)

    def __contains__(self, path: str) -> bool:
        return path in self.files

    def get(self, path: str) -> Optional[FileRecord]:
        return self.files.get(path)

    def to_mapping(self) -> Dict[str, Any]:
        """Flat path -> record mapping, without the digest."""
        return {path: record.to_json() for path, record in self.files.items()}

    def compute_digest(self) -> str:
        return compute_manifest_digest(self.to_mapping())

    def with_digest(self) -> "Manifest":
        """Return a copy carrying a freshly computed digest."""
        return Manifest(files=dict(self.files), digest=self.compute_digest())

    def without_digest(self) -> "Manifest":
        return Manifest(files=dict(self.files))

    def verify_digest(self) -> bool:
        """Check the stored digest against the records."""
        return self.digest is not None and self.digest == self.compute_digest()

    def view(self, prefix: str) -> "Manifest":
        """Restrict to entries under ``prefix`` and re-root their keys.

        The empty prefix returns every entry unchanged. A file named
        exactly ``digest`` directly inside the view's directory cannot be
        represented next to the digest field and is left out.
        """
        prefix = prefix.strip("/")
        if not prefix:
            selected = dict(self.files)
        else:
            start = prefix + "/"
            selected = {
                path[len(start):]: record
                for path, record in self.files.items()
                if path.startswith(start)
            }

        if DIGEST_FIELD in selected:
            logger.warning(
                "File '%s' collides with the digest field; leaving it out of this view",
                f"{prefix}/{DIGEST_FIELD}" if prefix else DIGEST_FIELD,
            )
            del selected[DIGEST_FIELD]
        return Manifest(files=selected)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Manifest":
        """Parse the flat on-disk mapping.

        Raises:
            ValueError: If the mapping is not a valid manifest
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")

        digest = data.get(DIGEST_FIELD)
        if digest is not None and not isinstance(digest, str):
            raise ValueError("digest must be a string")

        files = {}
        for path, raw in data.items():
            if path == DIGEST_FIELD:
                continue
            if not isinstance(raw, Mapping):
                raise ValueError(f"entry for {path!r} must be an object")
            # unusable createdAt values are dropped so the merger derives a fresh one
            created = raw.get(CREATED_AT_FIELD)
            if not is_valid_created_at(created):
                raw = {k: v for k, v in raw.items() if k != CREATED_AT_FIELD}
            try:
                files[path] = FileRecord.model_validate(raw)
            except ValidationError as e:
                raise ValueError(f"invalid record for {path!r}: {e}") from e
        return cls(files=files, digest=digest)

    def render(self, space: Optional[int] = None) -> str:
        """Serialize with sorted keys and the digest as the last field."""
        data: Dict[str, Any] = {path: self.files[path].to_json() for path in sorted(self.files)}
        if self.digest is not None:
            data[DIGEST_FIELD] = self.digest
        return json.dumps(data, indent=space or None, ensure_ascii=False, sort_keys=False) + "\n"
