"""Tests for OutputDirectory."""

import logging

import pytest

from postimage.store.output import OutputDirectory


class TestOutputDirectory:
    """Tests for OutputDirectory."""

    def test_path_for(self, tmp_path):
        """Test that artifacts live directly under the root."""
        out = OutputDirectory(tmp_path / "img")
        assert out.path_for("photo-abc.webp") == tmp_path / "img" / "photo-abc.webp"

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b.jpg", "..\\b.jpg"])
    def test_path_for_invalid(self, tmp_path, name):
        """Test that names escaping the directory are rejected."""
        with pytest.raises(ValueError, match="Invalid artifact filename"):
            OutputDirectory(tmp_path).path_for(name)

    def test_exists(self, tmp_path):
        """Test that exists() reports written files only."""
        out = OutputDirectory(tmp_path)
        assert not out.exists("a.jpg")
        (tmp_path / "a.jpg").write_bytes(b"x")
        assert out.exists("a.jpg")

    def test_exists_ignores_directories(self, tmp_path):
        """Test that a directory with an artifact name is not a hit."""
        (tmp_path / "a.jpg").mkdir()
        assert not OutputDirectory(tmp_path).exists("a.jpg")

    def test_ensure_creates_parents(self, tmp_path):
        """Test that ensure() creates missing parents and is repeatable."""
        out = OutputDirectory(tmp_path / "public" / "assets" / "images")
        out.ensure()
        out.ensure()
        assert out.root.is_dir()

    def test_clear(self, tmp_path, caplog):
        """Test that clear() empties the directory and logs the removal."""
        out = OutputDirectory(tmp_path / "img")
        out.ensure()
        (out.root / "old.jpg").write_bytes(b"x")
        (out.root / "nested").mkdir()

        with caplog.at_level(logging.INFO, logger="postimage"):
            out.clear()

        assert out.root.is_dir()
        assert list(out.root.iterdir()) == []
        assert "Removed output directory" in caplog.text

    def test_clear_missing(self, tmp_path):
        """Test that clearing a missing directory just creates it."""
        out = OutputDirectory(tmp_path / "img")
        out.clear()
        assert out.root.is_dir()
