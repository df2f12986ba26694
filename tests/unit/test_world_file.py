"""
Unit tests for the world descriptor file.
"""

import pytest

from clwm.clwm_lib.errors import WorldFileError
from clwm.clwm_lib.storage import StorageBackend
from clwm.clwm_lib.world_file import WorldFile


class TestWorldFile:
    """Tests for WorldFile."""

    def test_save_and_load(self, tmp_path):
        """Saved descriptor loads back equal."""
        path = tmp_path / "world.clwm"
        WorldFile(url="sqlite:world.db").save(path)
        loaded = WorldFile.load(path)
        assert loaded == WorldFile(url="sqlite:world.db", data_interface=StorageBackend.SQLITE)

    def test_document_shape(self, tmp_path):
        """Descriptor file holds data_interface and url."""
        path = tmp_path / "world.clwm"
        WorldFile(url="w.db").save(path)
        assert path.read_text() == "data_interface: sqlite\nurl: w.db\n"

    def test_backend_case_insensitive(self, tmp_path):
        """Backend name is case-insensitive."""
        path = tmp_path / "world.clwm"
        path.write_text("data_interface: SQLite\nurl: w.db\n")
        assert WorldFile.load(path).data_interface == StorageBackend.SQLITE

    def test_missing_file(self, tmp_path):
        """Missing file raises WorldFileError."""
        with pytest.raises(WorldFileError, match="cannot read"):
            WorldFile.load(tmp_path / "absent.clwm")

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML raises WorldFileError."""
        path = tmp_path / "world.clwm"
        path.write_text("url: [unclosed\n")
        with pytest.raises(WorldFileError, match="not valid YAML"):
            WorldFile.load(path)

    @pytest.mark.parametrize(
        "text,message",
        [
            ("- a list\n", "must be a mapping"),
            ("data_interface: sqlite\n", "no 'url'"),
            ("url: w.db\n", "no 'data_interface'"),
            ("data_interface: postgres\nurl: w.db\n", "Invalid storage backend"),
        ],
    )
    def test_malformed(self, tmp_path, text, message):
        """Malformed descriptor raises WorldFileError."""
        path = tmp_path / "world.clwm"
        path.write_text(text)
        with pytest.raises(WorldFileError, match=message):
            WorldFile.load(path)
