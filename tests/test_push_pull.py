"""End-to-end push and pull against a bare git remote, with the database faked."""

import gzip
import subprocess
import time

import pytest

from concrete_sync.commands import push
from concrete_sync.commands.pull import SnapshotPuller
from concrete_sync.commands.push import SnapshotPusher
from concrete_sync.commands.tags import fetch_snapshot_tags
from concrete_sync.exceptions import ExportFailed, OperationCancelled, RefNotFound
from concrete_sync.sync.tags import LATEST

from conftest import FakeExporter, FakeImporter, requires_git, tree, write

pytestmark = requires_git


def answers(*values):
    pending = list(values)
    return lambda prompt="": pending.pop(0)


def at(day):
    return time.mktime((2024, 1, day, 12, 0, 0, 0, 0, -1))


def no_op(settings, verbose=False):
    return True


@pytest.fixture
def pusher_for(bare_remote):
    def factory(settings, exporter=None, ask=None):
        return SnapshotPusher(settings, exporter=exporter or FakeExporter(), ask=ask or answers())
    return factory


@pytest.fixture
def puller_for(bare_remote):
    def factory(settings, importer=None, ask=None):
        return SnapshotPuller(settings, importer=importer or FakeImporter(), ask=ask or answers(),
                              install=no_op, clear=no_op)
    return factory


class TestPush:
    def test_push_creates_tagged_snapshot(self, make_settings, pusher_for, bare_remote):
        settings = make_settings()
        exporter = FakeExporter()

        tag = pusher_for(settings, exporter).run(assume_yes=True, now=at(1))

        assert tag == "snapshot-2024-01-01_12-00-00"
        assert exporter.calls[0][0] == settings.database
        assert fetch_snapshot_tags(settings) == [tag]
        assert not settings.clone_dir.exists()

    def test_n_pushes_give_n_tags_newest_first(self, make_settings, pusher_for, site):
        settings = make_settings()
        for day in (1, 2, 3):
            write(site / "public/application/config/app.php", f"version {day}")
            pusher_for(settings).run(assume_yes=True, now=at(day))

        assert fetch_snapshot_tags(settings) == [
            "snapshot-2024-01-03_12-00-00",
            "snapshot-2024-01-02_12-00-00",
            "snapshot-2024-01-01_12-00-00",
        ]

    def test_declined_confirmation(self, make_settings, pusher_for):
        settings = make_settings()
        with pytest.raises(OperationCancelled):
            pusher_for(settings, ask=answers("n")).run()
        assert not settings.clone_dir.exists()

    def test_ask_toggles(self, make_settings, pusher_for, puller_for, tmp_path):
        settings = make_settings(uploaded_files_mode="ask", database_mode="ask")
        exporter = FakeExporter()

        pusher_for(settings, exporter, ask=answers("yes", "n", "n")).run(now=at(1))

        assert exporter.calls == []
        target = make_settings(site_path=tmp_path / "target", database_mode="skip", uploaded_files_mode="auto")
        puller_for(target).run(ref=LATEST, assume_yes=True)
        assert not (tmp_path / "target/public/application/files").exists()

    def test_export_failure_still_publishes_other_categories(self, make_settings, pusher_for, puller_for,
                                                            site, tmp_path):
        settings = make_settings()
        exporter = FakeExporter(fail_with=ExportFailed(2, "Access denied"))

        with pytest.raises(ExportFailed):
            pusher_for(settings, exporter).run(assume_yes=True, now=at(1))

        assert fetch_snapshot_tags(settings) == []
        assert not settings.clone_dir.exists()

        target = make_settings(site_path=tmp_path / "target")
        importer = FakeImporter()
        puller_for(target, importer).run(ref=LATEST, assume_yes=True)
        assert (tmp_path / "target/public/application/config/app.php").read_text() == \
            (site / "public/application/config/app.php").read_text()
        assert (tmp_path / "target/public/application/files/1234/photo.jpg").read_text() == "jpeg-bytes"
        assert importer.imported == []

    def test_export_failure_is_reported(self, make_settings, bare_remote, monkeypatch, capsys):
        failing = FakeExporter(fail_with=ExportFailed(2, "Access denied"))
        monkeypatch.setattr(push, "DatabaseExporter", lambda *args, **kwargs: failing)

        assert push.push_snapshot(make_settings(), assume_yes=True) is False
        assert "❌" in capsys.readouterr().out


class TestPull:
    def test_round_trip(self, make_settings, pusher_for, puller_for, site, tmp_path):
        source = make_settings()
        pusher_for(source, FakeExporter(b"-- dump v1\n")).run(assume_yes=True, now=at(1))

        target_site = tmp_path / "target"
        write(target_site / "public/application/files/local/keep.jpg", "local")
        target = make_settings(site_path=target_site)
        importer = FakeImporter()

        ref = puller_for(target, importer).run(ref=LATEST, assume_yes=True)

        assert ref == LATEST
        assert importer.imported == [b"-- dump v1\n"]
        assert (target_site / "public/application/config/app.php").read_text() == \
            (site / "public/application/config/app.php").read_text()
        assert (target_site / "public/packages/forms/controller.php").is_file()
        assert (target_site / "public/application/files/1234/photo.jpg").read_text() == "jpeg-bytes"
        assert (target_site / "public/application/files/local/keep.jpg").read_text() == "local"
        assert not (target_site / "public/application/themes/brand/node_modules").exists()
        assert not target.clone_dir.exists()

    def test_interactive_selection_of_older_tag(self, make_settings, pusher_for, puller_for, site, tmp_path):
        source = make_settings()
        for day in (1, 2):
            write(site / "public/application/config/app.php", f"version {day}")
            pusher_for(source, FakeExporter(f"-- dump {day}\n".encode())).run(assume_yes=True, now=at(day))

        target = make_settings(site_path=tmp_path / "target")
        importer = FakeImporter()
        ref = puller_for(target, importer, ask=answers("y", "2")).run()

        assert ref == "snapshot-2024-01-01_12-00-00"
        assert (tmp_path / "target/public/application/config/app.php").read_text() == "version 1"
        assert importer.imported == [b"-- dump 1\n"]

    def test_unknown_tag(self, make_settings, pusher_for, puller_for, tmp_path):
        source = make_settings()
        pusher_for(source).run(assume_yes=True, now=at(1))

        target = make_settings(site_path=tmp_path / "target")
        with pytest.raises(RefNotFound):
            puller_for(target).run(ref="snapshot-1999-01-01_00-00-00", assume_yes=True)
        assert not target.clone_dir.exists()

    def test_snapshot_without_database(self, make_settings, pusher_for, puller_for, tmp_path, capsys):
        pusher_for(make_settings(database_mode="skip")).run(assume_yes=True, now=at(1))

        importer = FakeImporter()
        puller_for(make_settings(site_path=tmp_path / "target"), importer).run(ref=LATEST, assume_yes=True)

        assert importer.imported == []
        assert "No database dump found" in capsys.readouterr().out


def test_dump_in_snapshot_is_gzip(make_settings, pusher_for, bare_remote, tmp_path):
    settings = make_settings()
    pusher_for(settings, FakeExporter(b"-- gz\n")).run(assume_yes=True, now=at(1))

    checkout = tmp_path / "checkout"
    subprocess.run(["git", "clone", "-q", "-b", "main", str(bare_remote), str(checkout)], check=True)

    assert (checkout / "database" / "latest.sql.gz").exists()
    dumps = [path.name for path in (checkout / "database").iterdir()]
    assert "development_db_20240101_120000.sql.gz" in dumps
    with gzip.open(checkout / "database" / "latest.sql.gz", "rb") as dump:
        assert dump.read() == b"-- gz\n"
    assert "files/1234/photo.jpg" in tree(checkout)
