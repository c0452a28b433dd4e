"""Tests for the manifest model and per-directory view derivation."""

import json
import logging
from pathlib import Path

import pytest

from dirsnap.builder import ancestor_dirs, build_manifests, derive_views
from dirsnap.manifest import FileRecord, Manifest, is_valid_created_at
from dirsnap.walker import WalkEntry


def entry(relpath: str, anchor: str = "") -> WalkEntry:
    key = relpath[len(anchor) + 1:] if anchor else relpath
    return WalkEntry(path=Path("/r") / relpath, relpath=relpath, anchor=anchor, key=key)


class TestFileRecord:
    """Test record serialization."""

    def test_identity_always_present(self):
        assert FileRecord().to_json() == {"identity": None}

    def test_created_at_integral_rendered_as_int(self):
        data = FileRecord(identity="abc", created_at=1700000000000.0).to_json()

        assert data == {"createdAt": 1700000000000, "identity": "abc"}
        assert isinstance(data["createdAt"], int)

    def test_alias_accepted(self):
        record = FileRecord.model_validate({"identity": 1, "createdAt": 5})
        assert record.created_at == 5

    @pytest.mark.parametrize("value,valid", [
        (1, True),
        (1.5, True),
        (0, False),
        (-3, False),
        (float("nan"), False),
        (float("inf"), False),
        (True, False),
        ("123", False),
        (None, False),
        (10 ** 400, False),
    ])
    def test_created_at_validity(self, value, valid):
        assert is_valid_created_at(value) is valid


class TestManifestDigest:
    """Digest attach/verify helpers."""

    def test_with_digest_verifies(self):
        manifest = Manifest(files={"a.txt": FileRecord(identity=1)}).with_digest()

        assert manifest.digest.startswith("sha256:")
        assert manifest.verify_digest()

    def test_without_digest(self):
        manifest = Manifest(files={"a.txt": FileRecord(identity=1)}).with_digest()
        assert manifest.without_digest().digest is None
        assert not manifest.without_digest().verify_digest()

    def test_tampered_record_fails(self):
        manifest = Manifest(files={"a.txt": FileRecord(identity=1)}).with_digest()
        tampered = Manifest(files={"a.txt": FileRecord(identity=2)}, digest=manifest.digest)

        assert not tampered.verify_digest()

    def test_digest_independent_of_insertion_order(self):
        one = Manifest(files={"a": FileRecord(identity=1), "b": FileRecord(identity=2)})
        two = Manifest(files={"b": FileRecord(identity=2), "a": FileRecord(identity=1)})

        assert one.compute_digest() == two.compute_digest()


class TestManifestView:
    """Test re-rooting a manifest at a subdirectory."""

    @pytest.fixture
    def manifest(self):
        return Manifest(files={
            "top.txt": FileRecord(identity=1),
            "a/x.txt": FileRecord(identity=2),
            "a/b/y.txt": FileRecord(identity=3),
            "ab/z.txt": FileRecord(identity=4),
        })

    def test_root_view_is_everything(self, manifest):
        assert manifest.view("").files == manifest.files

    def test_subdirectory_view(self, manifest):
        view = manifest.view("a")

        assert set(view.files) == {"x.txt", "b/y.txt"}
        assert view.get("b/y.txt").identity == 3

    def test_prefix_is_segment_based(self, manifest):
        assert set(manifest.view("ab").files) == {"z.txt"}

    def test_trailing_slash(self, manifest):
        assert set(manifest.view("a/b/").files) == {"y.txt"}

    def test_view_has_no_digest(self, manifest):
        assert manifest.with_digest().view("a").digest is None

    def test_digest_named_file_dropped(self, caplog):
        manifest = Manifest(files={
            "sub/digest": FileRecord(identity=1),
            "sub/other": FileRecord(identity=2),
        })

        with caplog.at_level(logging.WARNING, logger="dirsnap.manifest"):
            view = manifest.view("sub")

        assert set(view.files) == {"other"}
        assert "sub/digest" in caplog.text
        # still present one level up, under a longer key
        assert "sub/digest" in manifest.view("").files


class TestFromMapping:
    """Test parsing the on-disk form."""

    def test_roundtrip_fields(self):
        manifest = Manifest.from_mapping({
            "a.txt": {"identity": 12, "createdAt": 1000},
            "b.txt": {"identity": None},
            "digest": "sha256:abc",
        })

        assert manifest.digest == "sha256:abc"
        assert manifest.get("a.txt").identity == 12
        assert manifest.get("a.txt").created_at == 1000
        assert manifest.get("b.txt").identity is None
        assert "digest" not in manifest

    def test_invalid_created_at_dropped(self):
        manifest = Manifest.from_mapping({
            "a.txt": {"identity": 1, "createdAt": -5},
            "b.txt": {"identity": 1, "createdAt": "yesterday"},
        })

        assert manifest.get("a.txt").created_at is None
        assert manifest.get("b.txt").created_at is None

    @pytest.mark.parametrize("data", [
        [],
        "text",
        {"a.txt": "not an object"},
        {"digest": 42},
        {"a.txt": {"identity": {"nested": True}}},
    ])
    def test_malformed(self, data):
        with pytest.raises(ValueError):
            Manifest.from_mapping(data)


class TestRender:
    """Test serialization layout."""

    def test_sorted_keys_digest_last(self):
        manifest = Manifest(files={
            "z.txt": FileRecord(identity=1),
            "a.txt": FileRecord(identity=2, created_at=10),
        }).with_digest()

        text = manifest.render(2)
        data = json.loads(text)

        assert list(data) == ["a.txt", "z.txt", "digest"]
        assert list(data["a.txt"]) == ["createdAt", "identity"]
        assert text.endswith("}\n")
        assert '\n  "a.txt"' in text

    def test_compact(self):
        manifest = Manifest(files={"a.txt": FileRecord(identity=1)})

        assert manifest.render(0) == '{"a.txt": {"identity": 1}}\n'
        assert manifest.render(None) == manifest.render(0)

    def test_non_ascii_kept(self):
        manifest = Manifest(files={"café.txt": FileRecord(identity=1)})
        assert "café.txt" in manifest.render()

    def test_rendered_digest_matches_parsed_content(self):
        manifest = Manifest(files={
            "b/c.txt": FileRecord(identity="deadbeef", created_at=1700000000000),
        }).with_digest()

        parsed = Manifest.from_mapping(json.loads(manifest.render(4)))

        assert parsed.verify_digest()


class TestBuildManifests:
    """Test grouping fingerprints into root manifests."""

    def test_single_anchor(self):
        manifests = build_manifests([(entry("a.txt"), 1), (entry("d/b.txt"), None)])

        assert list(manifests) == [""]
        assert manifests[""].get("a.txt").identity == 1
        assert manifests[""].get("d/b.txt").identity is None

    def test_multiple_anchors(self):
        manifests = build_manifests([
            (entry("x/a.txt", anchor="x"), 1),
            (entry("y/b/c.txt", anchor="y"), 2),
        ])

        assert set(manifests) == {"x", "y"}
        assert set(manifests["x"].files) == {"a.txt"}
        assert set(manifests["y"].files) == {"b/c.txt"}

    def test_empty(self):
        assert build_manifests([]) == {}


class TestDeriveViews:
    """Test per-directory view derivation."""

    def test_ancestor_dirs(self):
        assert ancestor_dirs("c.txt") == [""]
        assert ancestor_dirs("a/b/c.txt") == ["", "a", "a/b"]

    def test_every_directory_with_files_gets_a_view(self):
        manifest = Manifest(files={
            "top.txt": FileRecord(identity=1),
            "a/b/c.txt": FileRecord(identity=2),
        })

        views = derive_views(manifest)

        assert list(views) == ["", "a", "a/b"]
        assert set(views[""].files) == {"top.txt", "a/b/c.txt"}
        assert set(views["a"].files) == {"b/c.txt"}
        assert set(views["a/b"].files) == {"c.txt"}

    def test_empty_manifest_still_has_root_view(self):
        views = derive_views(Manifest())

        assert list(views) == [""]
        assert len(views[""]) == 0

    def test_extra_dirs_get_empty_views(self):
        manifest = Manifest(files={"a/x.txt": FileRecord(identity=1)})

        views = derive_views(manifest, extra_dirs=["gone"])

        assert set(views) == {"", "a", "gone"}
        assert len(views["gone"]) == 0
