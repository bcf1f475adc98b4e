"""
Tests for file helpers
"""

from devloop.utils.files import (
    backup_file,
    read_config,
    remove_file,
    restore_backup,
    write_config,
    write_env_file,
)


class TestFiles:
    """Injected config, env file and backups"""

    def test_write_config_round_trip(self, tmp_path):
        path = tmp_path / "web-src" / "src" / "config.json"
        urls = {"action": "https://ns.example.com/api/v1/web/g/action"}

        write_config(str(path), urls)

        assert read_config(str(path)) == urls

    def test_write_env_file(self, tmp_path):
        path = tmp_path / ".env.local"

        write_env_file(str(path), {"A": "1", "B": "two"}, "line one\nline two")

        assert path.read_text() == "# line one\n# line two\nA=1\nB=two\n"

    def test_backup_never_overwrites(self, tmp_path):
        original = tmp_path / "file"
        backup = tmp_path / "file.save"
        original.write_text("new")
        backup.write_text("old")

        assert backup_file(str(original), str(backup)) is False
        assert backup.read_text() == "old"
        assert original.read_text() == "new"

    def test_backup_and_restore(self, tmp_path):
        original = tmp_path / "file"
        backup = tmp_path / "file.save"
        original.write_text("mine")

        assert backup_file(str(original), str(backup)) is True
        assert not original.exists()
        assert restore_backup(str(backup), str(original)) is True
        assert original.read_text() == "mine"
        assert restore_backup(str(backup), str(original)) is False

    def test_remove_missing_file(self, tmp_path):
        assert remove_file(str(tmp_path / "gone")) is False
