"""
Immutable settings for one concrete_sync invocation

The layered configuration (see config_yaml) is turned once, at startup, into
a frozen Settings value that is passed explicitly to every component.
"""

import dataclasses
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from concrete_sync.config_yaml import YAMLConfig, KEY_VALUE_CONFIG_NAME
from concrete_sync.exceptions import PrerequisiteMissing

SYNC_MODES = ("auto", "ask", "skip")
PRODUCTION_NAMES = ("prod", "production")
DEVELOPMENT_NAMES = ("dev", "development")


@dataclass(frozen=True)
class DatabaseCredentials:
    """
    Connection parameters for the MySQL client tools
    """

    host: str
    name: str
    user: str
    password: str = field(repr=False, default="")
    port: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.host and self.name and self.user and self.password)

    def describe(self) -> str:
        host = f"{self.host}:{self.port}" if self.port else self.host
        return f"{self.user}@{host}/{self.name}"


@dataclass(frozen=True)
class Settings:
    """
    Everything a push, pull or fix needs to know, resolved once
    """

    environment: str
    site_path: Path
    repository: str
    branch: str
    work_dir: Path
    database: DatabaseCredentials
    uploaded_files_mode: str = "auto"
    database_mode: str = "auto"
    exclude_tables: Tuple[str, ...] = ()
    dump_prefix: str = ""
    dump_options: Tuple[str, ...] = ()
    composer_dir: str = ""
    composer_install: str = "auto"
    uploaded_files_path: str = "public/application/files"
    config_paths: Dict[str, str] = field(default_factory=dict)
    configuration_exclusions: Dict[str, str] = field(default_factory=dict)
    uploaded_files_exclusions: Dict[str, str] = field(default_factory=dict)
    tag_type: str = "snapshot"
    page_size: int = 10
    tag_unchanged: bool = True
    mirror_tool: str = "auto"
    git_user_name: str = "concrete-sync"
    git_user_email: str = "concrete-sync@localhost"

    @classmethod
    def from_config(cls, config: YAMLConfig) -> "Settings":
        """
        Builds the settings value from a loaded configuration

        Args:
            config: Loaded layered configuration

        Returns:
            Settings: Immutable settings
        """
        base_dir = config.base_dir

        site_path = str(config.get("site", "path", default="") or "")
        work_dir = Path(str(config.get("work_dir", default=".concrete-sync")))
        if not work_dir.is_absolute():
            work_dir = base_dir / work_dir

        exclude_tables = config.get("database", "exclude_tables", default=[]) or []
        if isinstance(exclude_tables, str):
            exclude_tables = exclude_tables.split()

        dump_options = config.get("database", "dump_options", default=[]) or []
        if isinstance(dump_options, str):
            dump_options = dump_options.split()

        credentials = DatabaseCredentials(
            host=str(config.get("database", "host", default="") or ""),
            name=str(config.get("database", "name", default="") or ""),
            user=str(config.get("database", "user", default="") or ""),
            password=str(config.get("database", "password", default="") or ""),
            port=str(config.get("database", "port", default="") or ""),
        )

        return cls(
            environment=str(config.get("environment", default="") or "").lower(),
            site_path=Path(site_path).expanduser() if site_path else Path(""),
            repository=str(config.get("git", "repository", default="") or ""),
            branch=str(config.get("git", "branch", default="main") or "main"),
            work_dir=work_dir,
            database=credentials,
            uploaded_files_mode=str(config.get("sync", "uploaded_files", default="auto")).lower(),
            database_mode=str(config.get("sync", "database", default="auto")).lower(),
            exclude_tables=tuple(exclude_tables),
            dump_prefix=str(config.get("database", "dump_prefix", default="") or ""),
            dump_options=tuple(dump_options),
            composer_dir=str(config.get("composer", "dir", default="") or ""),
            composer_install=str(config.get("composer", "install", default="auto")).lower(),
            uploaded_files_path=str(config.get("site", "uploaded_files", default="public/application/files")),
            config_paths=dict(config.get("site", "config_paths", default={}) or {}),
            configuration_exclusions=config.get_exclusions("configuration"),
            uploaded_files_exclusions=config.get_exclusions("uploaded_files"),
            tag_type=str(config.get("tags", "type", default="snapshot")),
            page_size=int(config.get("tags", "page_size", default=10)),
            tag_unchanged=bool(config.get("tags", "tag_unchanged", default=True)),
            mirror_tool=str(config.get("mirror", "tool", default="auto")).lower(),
            git_user_name=str(config.get("git", "user_name", default="concrete-sync")),
            git_user_email=str(config.get("git", "user_email", default="concrete-sync@localhost")),
        )

    @property
    def is_production(self) -> bool:
        return self.environment in PRODUCTION_NAMES

    @property
    def clone_dir(self) -> Path:
        return self.work_dir / "working-clone"

    @property
    def uploaded_files_dir(self) -> Path:
        return self.site_path / self.uploaded_files_path

    @property
    def backup_dir(self) -> Path:
        return self.site_path / "backups"

    @property
    def effective_dump_prefix(self) -> str:
        if self.dump_prefix:
            return self.dump_prefix
        return "production_db" if self.is_production else "development_db"

    @property
    def composer_command(self) -> List[str]:
        if self.composer_dir:
            return ["php", str(Path(self.composer_dir) / "composer.phar")]
        return ["composer"]

    @property
    def sync_database(self) -> bool:
        return self.database_mode != "skip"

    def resolved_mirror_tool(self) -> str:
        """
        Returns "rsync" or "copy" ("auto" picks rsync when it is installed)
        """
        if self.mirror_tool == "auto":
            return "rsync" if shutil.which("rsync") else "copy"
        return self.mirror_tool

    def validate(self, direction: str) -> "Settings":
        """
        Verifies configuration before any mutating action begins

        Args:
            direction: "push", "pull", "fix", "backup" or "tags"

        Returns:
            Settings: The settings, with the site path adjusted if needed

        Raises:
            PrerequisiteMissing: If a required value is missing or invalid
        """
        settings = self

        if direction in ("push", "pull"):
            if not self.environment:
                raise PrerequisiteMissing(
                    "ENVIRONMENT is not set",
                    remediation=f"Set ENVIRONMENT=prod or ENVIRONMENT=dev in {KEY_VALUE_CONFIG_NAME}",
                )
            if self.environment not in PRODUCTION_NAMES + DEVELOPMENT_NAMES:
                raise PrerequisiteMissing(
                    f"ENVIRONMENT must be 'prod' or 'dev', got: {self.environment}",
                    remediation=f"Fix ENVIRONMENT in {KEY_VALUE_CONFIG_NAME}",
                )

        for name, mode in (("SYNC_UPLOADED_FILES", self.uploaded_files_mode),
                           ("SYNC_DATABASE", self.database_mode)):
            if mode not in SYNC_MODES:
                raise PrerequisiteMissing(
                    f"{name} must be one of {', '.join(SYNC_MODES)}, got: {mode}",
                    remediation=f"Fix {name} in {KEY_VALUE_CONFIG_NAME}",
                )

        if direction != "tags":
            settings = settings._validated_site_path()

        if direction in ("push", "pull", "tags") and not self.repository:
            raise PrerequisiteMissing(
                "No snapshot repository configured",
                remediation=f"Set FILES_GIT_REPO in {KEY_VALUE_CONFIG_NAME} (e.g. git@github.com:user/site-snapshots.git)",
            )

        needs_database = direction == "backup" or (direction in ("push", "pull") and self.sync_database)
        if needs_database and not self.database.is_complete:
            raise PrerequisiteMissing(
                "Database credentials are incomplete",
                remediation=(f"Set DB_HOSTNAME, DB_DATABASE, DB_USERNAME and DB_PASSWORD in {KEY_VALUE_CONFIG_NAME}, "
                             "or set SYNC_DATABASE=skip"),
            )

        if self.page_size < 1:
            raise PrerequisiteMissing(
                f"Tag page size must be at least 1, got: {self.page_size}",
                remediation="Fix tags.page_size (TAG_PAGE_SIZE)",
            )

        return settings

    def _validated_site_path(self) -> "Settings":
        if not str(self.site_path) or str(self.site_path) == ".":
            raise PrerequisiteMissing(
                "SITE_PATH is not set (path to the Concrete CMS site root)",
                remediation=f"Set SITE_PATH=/path/to/site in {KEY_VALUE_CONFIG_NAME}",
            )
        if not self.site_path.is_dir():
            raise PrerequisiteMissing(
                f"SITE_PATH does not exist: {self.site_path}",
                remediation="Point SITE_PATH at the site root (the directory holding public/ and composer.json)",
            )

        site_path = self.site_path
        if site_path.name == "public" and (site_path.parent / "composer.json").exists():
            print("⚠️ SITE_PATH points to the public/ directory, using its parent as site root")
            site_path = site_path.parent
            print(f"   Adjusted SITE_PATH to: {site_path}")

        if not (site_path / "public").is_dir() and not (site_path / "composer.json").exists():
            print("⚠️ SITE_PATH doesn't look like a Concrete CMS site (no public/ or composer.json found)")

        if site_path != self.site_path:
            return dataclasses.replace(self, site_path=site_path)
        return self

    def check_tools(self, direction: str, which=shutil.which) -> List[str]:
        """
        Verifies that the external tools for a direction are installed

        Args:
            direction: "push", "pull", "fix", "backup" or "tags"
            which: Lookup function (shutil.which)

        Returns:
            List[str]: Warnings about optional tools that are missing

        Raises:
            PrerequisiteMissing: If a required tool is missing
        """
        required = []
        if direction in ("push", "pull", "tags", "fix"):
            required.append("git")
        if direction == "backup" or (direction == "push" and self.sync_database):
            required.append("mysqldump")
        if direction == "pull" and self.sync_database:
            required.append("mysql")
        if direction in ("push", "pull") and self.mirror_tool == "rsync":
            required.append("rsync")

        for tool in required:
            if not which(tool):
                raise PrerequisiteMissing(
                    f"{tool} is required but not installed",
                    remediation=f"Install {tool} and make sure it is on the PATH",
                )

        warnings = []
        if direction in ("pull", "fix") and self.composer_install != "skip":
            if not which(self.composer_command[0]):
                warnings.append(f"{self.composer_command[0]} not found, dependencies will not be installed")
        return warnings


def load_settings(config: YAMLConfig, direction: Optional[str] = None) -> Settings:
    """
    Builds and (optionally) validates the settings for one direction
    """
    settings = Settings.from_config(config)
    if direction:
        settings = settings.validate(direction)
    return settings
