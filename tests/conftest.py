"""Shared test fixtures for concrete_sync."""

import copy
import gzip
import shutil
import subprocess
from pathlib import Path

import pytest

from concrete_sync.config_yaml import DEFAULT_CONFIG
from concrete_sync.settings import DatabaseCredentials, Settings
from concrete_sync.sync.database import ExportResult

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def write(path: Path, content: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def tree(root: Path) -> dict:
    """Map of relative path -> content for every regular file under root."""
    result = {}
    for path in sorted(root.rglob("*")):
        if path.is_file() and ".git" not in path.relative_to(root).parts:
            result[path.relative_to(root).as_posix()] = path.read_bytes()
    return result


@pytest.fixture(autouse=True)
def isolated_git(tmp_path_factory, monkeypatch):
    """Keep the user's git configuration out of the tests."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """A small Concrete CMS site tree."""
    root = tmp_path / "site"
    write(root / "composer.json", "{}")
    app = root / "public" / "application"
    write(app / "config" / "app.php", "<?php return ['debug' => true];")
    write(app / "config" / "doctrine" / "proxies" / "Proxy.php", "generated")
    write(app / "config" / "generated_overrides" / "concrete.php", "generated")
    write(app / "themes" / "brand" / "page_theme.php", "<?php // theme")
    write(app / "themes" / "brand" / "node_modules" / "lib" / "index.js", "module.exports = 1;")
    write(app / "themes" / "brand" / "css" / "main.css", "body {}")
    write(app / "blocks" / "hero" / "view.php", "<div></div>")
    write(app / "packages" / "store" / "controller.php", "<?php // package")
    write(app / "packages" / "store" / "vendor" / "autoload.php", "<?php // vendored")
    write(root / "public" / "packages" / "forms" / "controller.php", "<?php // forms")
    write(app / "files" / "1234" / "photo.jpg", "jpeg-bytes")
    write(app / "files" / "cache" / "thumb.jpg", "cached")
    write(app / "files" / "backup.sql.gz", "not-media")
    write(app / "files" / ".gitkeep", "")
    return root


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """An empty bare repository acting as the snapshot remote."""
    remote = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", "-q", str(remote)], check=True)
    return remote


@pytest.fixture
def make_settings(tmp_path: Path, site: Path):
    """Factory for Settings pointing at the temporary site and remote."""

    def factory(**overrides) -> Settings:
        values = dict(
            environment="dev",
            site_path=site,
            repository=str(tmp_path / "remote.git"),
            branch="main",
            work_dir=tmp_path / "work",
            database=DatabaseCredentials(host="localhost", name="concrete", user="concrete", password="s3cret"),
            config_paths=copy.deepcopy(DEFAULT_CONFIG["site"]["config_paths"]),
            configuration_exclusions=dict(DEFAULT_CONFIG["exclusions"]["configuration"]),
            uploaded_files_exclusions=dict(DEFAULT_CONFIG["exclusions"]["uploaded_files"]),
            mirror_tool="copy",
        )
        values.update(overrides)
        return Settings(**values)

    return factory


class FakeExporter:
    """Stands in for DatabaseExporter; writes a tiny gzip dump."""

    def __init__(self, content: bytes = b"CREATE TABLE Pages (id int);\n", fail_with=None):
        self.content = content
        self.fail_with = fail_with
        self.calls = []

    def export(self, credentials, exclude_tables, destination):
        self.calls.append((credentials, tuple(exclude_tables), Path(destination)))
        if self.fail_with:
            raise self.fail_with
        with gzip.open(destination, "wb") as dump:
            dump.write(self.content)
        return ExportResult(path=Path(destination), size_bytes=Path(destination).stat().st_size)


class FakeImporter:
    """Stands in for DatabaseImporter; records the dump it was given."""

    def __init__(self):
        self.imported = []

    def import_dump(self, credentials, dump_path):
        with gzip.open(dump_path, "rb") as dump:
            self.imported.append(dump.read())


@pytest.fixture
def fake_exporter() -> FakeExporter:
    return FakeExporter()


@pytest.fixture
def fake_importer() -> FakeImporter:
    return FakeImporter()
