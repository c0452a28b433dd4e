"""Shared test fixtures and utilities."""

import json
from pathlib import Path

import pytest

from dirsnap.config import SnapshotConfig


@pytest.fixture
def write_file(tmp_path):
    """Factory fixture to write files relative to tmp_path."""
    def _write(path: str, content: str = "test content"):
        file_path = tmp_path / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return file_path
    return _write


@pytest.fixture
def test_files(write_file):
    """Create a small project tree in tmp_path."""
    def make_files():
        return {
            "file1.txt": write_file("file1.txt", "content1"),
            "file2.txt": write_file("file2.txt", "content2"),
            "src/main.py": write_file("src/main.py", "print('hello')"),
            "data/raw/data.csv": write_file("data/raw/data.csv", "a,b,c\n1,2,3"),
            ".git/config": write_file(".git/config", "[core]"),
        }
    return make_files


@pytest.fixture
def make_config(tmp_path):
    """Factory fixture for a SnapshotConfig rooted at tmp_path."""
    def _make(**kwargs):
        kwargs.setdefault("root", tmp_path)
        return SnapshotConfig(**kwargs)
    return _make


@pytest.fixture
def read_json():
    """Load a JSON file as a dict."""
    def _read(path: Path):
        return json.loads(path.read_text())
    return _read
