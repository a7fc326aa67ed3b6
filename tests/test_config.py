"""Tests for the layered configuration and settings validation."""

from pathlib import Path

import pytest

from concrete_sync.config_yaml import YAMLConfig, load_config
from concrete_sync.exceptions import PrerequisiteMissing
from concrete_sync.settings import Settings, load_settings

from conftest import write


@pytest.fixture
def base_dir(tmp_path):
    directory = tmp_path / "project"
    directory.mkdir()
    return directory


def full_config(base_dir, site, **environ):
    values = {
        "ENVIRONMENT": "dev",
        "SITE_PATH": str(site),
        "FILES_GIT_REPO": "git@example.com:site/snapshots.git",
        "DB_HOSTNAME": "localhost",
        "DB_DATABASE": "concrete",
        "DB_USERNAME": "concrete",
        "DB_PASSWORD": "secret",
    }
    values.update(environ)
    return load_config(base_dir=base_dir, environ=values)


class TestLayering:
    def test_defaults_only(self, base_dir, capsys):
        config = load_config(base_dir=base_dir, environ={})
        assert config.get("git", "branch") == "main"
        assert config.get("tags", "page_size") == 10
        assert "No configuration file found" in capsys.readouterr().out

    def test_precedence(self, base_dir):
        write(base_dir / "concrete-sync.yaml",
              "git:\n  repository: from-yaml\n  branch: yaml-branch\ntags:\n  page_size: 5\n")
        write(base_dir / ".deployment-config",
              'FILES_GIT_REPO="from-key-value"\nDB_EXCLUDE_TABLES="Logs Sessions"\n')

        config = load_config(base_dir=base_dir, environ={"FILES_GIT_BRANCH": "env-branch"})

        assert config.get("git", "repository") == "from-key-value"
        assert config.get("git", "branch") == "env-branch"
        assert config.get("tags", "page_size") == 5
        assert config.get("database", "exclude_tables") == ["Logs", "Sessions"]
        assert len(config.loaded_files) == 2

    def test_explicit_key_value_file(self, tmp_path):
        config_file = write(tmp_path / "prod.env", "ENVIRONMENT=prod\nTAG_PAGE_SIZE=20\n")
        config = YAMLConfig(config_file=config_file, environ={})
        assert config.get("environment") == "prod"
        assert config.get("tags", "page_size") == 20

    def test_explicit_file_must_exist(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            YAMLConfig(config_file=tmp_path / "missing.yaml", environ={})

    def test_legacy_project_dir(self, base_dir):
        config = load_config(base_dir=base_dir, environ={"PROJECT_DIR": "/srv/site"})
        assert config.get("site", "path") == "/srv/site"

    def test_exclusion_can_be_disabled(self, base_dir):
        write(base_dir / "concrete-sync.yaml", "exclusions:\n  configuration:\n    vendor: false\n    extra: tmp/\n")
        exclusions = load_config(base_dir=base_dir, environ={}).get_exclusions("configuration")
        assert "vendor" not in exclusions
        assert exclusions["extra"] == "tmp/"
        assert exclusions["node_modules"] == "node_modules/"

    def test_display_masks_password(self, base_dir, site, capsys):
        full_config(base_dir, site).display()
        output = capsys.readouterr().out
        assert "secret" not in output
        assert "***********" in output


class TestSettings:
    def test_from_config(self, base_dir, site):
        settings = Settings.from_config(full_config(base_dir, site, DB_EXCLUDE_TABLES="Logs"))
        assert settings.site_path == Path(site)
        assert settings.exclude_tables == ("Logs",)
        assert settings.database.password == "secret"
        assert "secret" not in repr(settings)
        assert settings.clone_dir == base_dir / ".concrete-sync" / "working-clone"
        assert settings.effective_dump_prefix == "development_db"

    def test_valid_for_push(self, base_dir, site):
        assert load_settings(full_config(base_dir, site), "push").repository

    def test_missing_repository(self, base_dir, site):
        config = full_config(base_dir, site, FILES_GIT_REPO="")
        config.config["git"]["repository"] = ""
        with pytest.raises(PrerequisiteMissing) as info:
            load_settings(config, "push")
        assert "FILES_GIT_REPO" in info.value.remediation

    def test_invalid_environment(self, base_dir, site):
        with pytest.raises(PrerequisiteMissing):
            load_settings(full_config(base_dir, site, ENVIRONMENT="staging"), "pull")

    def test_invalid_toggle(self, base_dir, site):
        with pytest.raises(PrerequisiteMissing):
            load_settings(full_config(base_dir, site, SYNC_DATABASE="sometimes"), "push")

    def test_database_credentials_required_unless_skipped(self, base_dir, site):
        config = full_config(base_dir, site, SYNC_DATABASE="skip")
        config.config["database"]["password"] = ""
        assert load_settings(config, "push").database_mode == "skip"

        config.config["sync"]["database"] = "auto"
        with pytest.raises(PrerequisiteMissing):
            load_settings(config, "push")

    def test_missing_site_path(self, base_dir, tmp_path):
        with pytest.raises(PrerequisiteMissing):
            load_settings(full_config(base_dir, tmp_path / "nowhere"), "pull")

    def test_public_directory_is_adjusted(self, base_dir, site, capsys):
        settings = load_settings(full_config(base_dir, site / "public"), "push")
        assert settings.site_path == site
        assert "Adjusted SITE_PATH" in capsys.readouterr().out

    def test_tags_does_not_need_site(self, base_dir, tmp_path):
        config = full_config(base_dir, tmp_path / "nowhere")
        assert load_settings(config, "tags").repository

    def test_check_tools(self, base_dir, site):
        settings = load_settings(full_config(base_dir, site), "pull")
        installed = {"git", "mysql"}

        warnings = settings.check_tools("pull", which=lambda tool: tool in installed)
        assert warnings and "composer" in warnings[0]

        with pytest.raises(PrerequisiteMissing):
            settings.check_tools("push", which=lambda tool: tool in installed)

    def test_composer_phar(self, base_dir, site):
        settings = Settings.from_config(full_config(base_dir, site, COMPOSER_DIR="/opt/composer"))
        assert settings.composer_command == ["php", "/opt/composer/composer.phar"]
