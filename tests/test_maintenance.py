"""Tests for fix, backup, tag listing and the site helpers."""

import os
import stat
import time

from concrete_sync.commands import backup, fix
from concrete_sync.commands.backup import backup_database, create_database_backup
from concrete_sync.commands.fix import fix_environment
from concrete_sync.commands.tags import list_snapshot_tags
from concrete_sync.exceptions import ExportFailed
from concrete_sync.utils import site as site_helpers
from concrete_sync.utils.site import clear_caches, install_dependencies

from conftest import FakeExporter, requires_git, write


class TestBackup:
    def test_timestamped_file_in_site_backups(self, make_settings, site):
        now = time.mktime((2024, 5, 6, 7, 8, 9, 0, 0, -1))
        exporter = FakeExporter()

        path = create_database_backup(make_settings(), exporter=exporter, now=now)

        assert path == site / "backups" / "db_20240506_070809.sql.gz"
        assert path.is_file()

    def test_output_dir(self, make_settings, tmp_path):
        path = create_database_backup(make_settings(), output_dir=str(tmp_path / "out"), exporter=FakeExporter())
        assert path.parent == tmp_path / "out"

    def test_failure_is_reported(self, make_settings, monkeypatch, capsys):
        failing = FakeExporter(fail_with=ExportFailed(2, "Access denied"))
        monkeypatch.setattr(backup, "DatabaseExporter", lambda *args, **kwargs: failing)

        assert backup_database(make_settings()) is False
        assert "❌" in capsys.readouterr().out


class TestInstallDependencies:
    def run_with(self, monkeypatch, settings, returncode=0):
        commands = []

        def fake_run(cmd, cwd, verbose=False):
            commands.append(cmd)
            return returncode

        monkeypatch.setattr(site_helpers.shutil, "which", lambda tool: f"/usr/bin/{tool}")
        monkeypatch.setattr(site_helpers, "_run_streaming", fake_run)
        return install_dependencies(settings), commands

    def test_development(self, make_settings, monkeypatch):
        installed, commands = self.run_with(monkeypatch, make_settings())
        assert installed
        assert commands == [["composer", "install", "--no-interaction"]]

    def test_production_skips_dev_dependencies(self, make_settings, monkeypatch):
        _, commands = self.run_with(monkeypatch, make_settings(environment="prod"))
        assert commands == [["composer", "install", "--no-dev", "--optimize-autoloader", "--no-interaction"]]

    def test_failure_is_a_warning(self, make_settings, monkeypatch, capsys):
        installed, _ = self.run_with(monkeypatch, make_settings(), returncode=1)
        assert installed is False
        assert "⚠️" in capsys.readouterr().out

    def test_disabled(self, make_settings, monkeypatch):
        installed, commands = self.run_with(monkeypatch, make_settings(composer_install="skip"))
        assert installed is False
        assert commands == []

    def test_missing_composer(self, make_settings, monkeypatch):
        monkeypatch.setattr(site_helpers.shutil, "which", lambda tool: None)
        assert install_dependencies(make_settings()) is False

    def test_no_composer_json(self, make_settings, site, monkeypatch):
        (site / "composer.json").unlink()
        installed, commands = self.run_with(monkeypatch, make_settings())
        assert installed is False
        assert commands == []


def test_clear_caches_without_cli(make_settings):
    assert clear_caches(make_settings()) is False


def test_clear_caches(make_settings, site, monkeypatch):
    write(site / "vendor" / "bin" / "concrete", "#!/bin/sh\n")
    commands = []
    monkeypatch.setattr(site_helpers, "_run_streaming", lambda cmd, cwd, verbose=False: commands.append(cmd) or 0)

    assert clear_caches(make_settings())
    assert commands[0][1] == "c5:clear-cache"


def test_fix_environment(make_settings, site, monkeypatch):
    settings = make_settings()
    write(settings.clone_dir / "leftover.txt", "stale")
    photo = site / "public/application/files/1234/photo.jpg"
    os.chmod(photo, 0o777)
    tool = write(site / "public/application/packages/store/vendor/bin/tool", "#!/bin/sh\n")
    os.chmod(tool, 0o755)
    calls = []
    monkeypatch.setattr(fix, "install_dependencies", lambda settings, verbose=False: calls.append("install"))
    monkeypatch.setattr(fix, "clear_caches", lambda settings, verbose=False: calls.append("clear"))

    assert fix_environment(settings)

    assert not settings.clone_dir.exists()
    assert stat.S_IMODE(photo.stat().st_mode) == 0o644
    assert stat.S_IMODE(tool.stat().st_mode) == 0o755
    assert calls == ["install", "clear"]


@requires_git
def test_list_tags_on_empty_remote(make_settings, bare_remote, capsys):
    assert list_snapshot_tags(make_settings())
    assert "No snapshot tags found" in capsys.readouterr().out
