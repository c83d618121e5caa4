"""
Integration tests for CLI commands.

Each test points the data directory at a temporary path so commands run
against a fresh library.
"""

import pytest
from typer.testing import CliRunner

from tabshelf.cli import app, get_services

runner = CliRunner()


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("TABSHELF_STORAGE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("TABSHELF_CONFIG", raising=False)
    return tmp_path / "data"


@pytest.fixture
def music(tmp_path):
    directory = tmp_path / "music"
    directory.mkdir()
    # No artist in the names, so no cover lookups are queued.
    (directory / "Blackbird.pdf").write_bytes(b"%PDF")
    (directory / "Etude.gp5").write_bytes(b"gp")
    (directory / "readme.txt").write_text("not a tab")
    return directory


class TestCLIHelp:
    """Test CLI help and usage information."""

    def test_main_help(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("sync", "list", "status", "add-path", "remove-path", "watch"):
            assert command in result.stdout

    def test_list_help(self):
        result = runner.invoke(app, ["list", "--help"])

        assert result.exit_code == 0
        assert "--search" in result.stdout
        assert "--page-size" in result.stdout


class TestSyncPaths:
    def test_add_path_rejects_non_directory(self, data_dir, tmp_path):
        result = runner.invoke(app, ["add-path", str(tmp_path / "missing")])

        assert result.exit_code == 1
        assert "Not a directory" in result.stdout

    def test_add_path_twice(self, data_dir, music):
        first = runner.invoke(app, ["add-path", str(music)])
        second = runner.invoke(app, ["add-path", str(music)])

        assert first.exit_code == 0
        assert "Added sync path" in first.stdout
        assert second.exit_code == 0
        assert "Already syncing" in second.stdout

    def test_remove_path(self, data_dir, music):
        runner.invoke(app, ["add-path", str(music)])

        unknown = runner.invoke(app, ["remove-path", "/not/synced"])
        removed = runner.invoke(app, ["remove-path", str(music)])

        assert unknown.exit_code == 1
        assert "Not a sync path" in unknown.stdout
        assert removed.exit_code == 0
        assert "Removed sync path" in removed.stdout

        services = get_services()
        try:
            assert services.store.settings.sync_paths == ()
        finally:
            services.close()


class TestSyncAndList:
    def test_sync_without_paths(self, data_dir):
        result = runner.invoke(app, ["sync"])

        assert result.exit_code == 0
        assert "No sync paths configured" in result.stdout

    def test_sync_then_list(self, data_dir, music):
        runner.invoke(app, ["add-path", str(music)])

        synced = runner.invoke(app, ["sync"])
        listed = runner.invoke(app, ["list"])

        assert synced.exit_code == 0
        assert "Sync Complete" in synced.stdout
        assert "Added:" in synced.stdout
        assert listed.exit_code == 0
        assert "Tabs (2 total)" in listed.stdout
        assert "Blackbird" in listed.stdout
        assert "Etude" in listed.stdout

    def test_list_search_and_pages(self, data_dir, music):
        runner.invoke(app, ["add-path", str(music)])
        runner.invoke(app, ["sync"])

        searched = runner.invoke(app, ["list", "--search", "black", "--field", "title"])
        paged = runner.invoke(app, ["list", "--page-size", "1", "--sort", "title"])

        assert "Tabs (1 total)" in searched.stdout
        assert "Etude" not in searched.stdout
        assert "More results on page 2" in paged.stdout

    def test_list_empty_library(self, data_dir):
        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "No tabs found." in result.stdout

    def test_list_rejects_unknown_sort(self, data_dir):
        result = runner.invoke(app, ["list", "--sort", "size"])

        assert result.exit_code == 1
        assert "Invalid sort" in result.stdout


class TestSettingsCommands:
    def test_status_on_new_library(self, data_dir):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Library Statistics" in result.stdout
        assert "never" in result.stdout
        assert "skip" in result.stdout

    def test_strategy(self, data_dir):
        changed = runner.invoke(app, ["strategy", "OVERWRITE"])
        status = runner.invoke(app, ["status"])
        invalid = runner.invoke(app, ["strategy", "merge"])

        assert changed.exit_code == 0
        assert "overwrite" in status.stdout
        assert invalid.exit_code == 1
        assert "Invalid strategy" in invalid.stdout

    def test_categories(self, data_dir):
        empty = runner.invoke(app, ["categories"])

        services = get_services()
        try:
            rock = services.library.add_category("Rock")
            services.library.add_category("Metal", parent_id=rock.id)
        finally:
            services.close()
        listed = runner.invoke(app, ["categories"])

        assert "No categories." in empty.stdout
        assert listed.exit_code == 0
        assert "Metal" in listed.stdout
        assert "Rock" in listed.stdout

    def test_watch_without_paths(self, data_dir):
        result = runner.invoke(app, ["watch"])

        assert result.exit_code == 0
        assert "No sync paths configured" in result.stdout
