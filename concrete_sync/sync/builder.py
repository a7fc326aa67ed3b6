"""
Snapshot assembly and dispersal

SnapshotBuilder copies the three payload categories (configuration trees,
uploaded files and a database dump) from a site into a working clone for a
push, and back from a checked-out snapshot into a site for a pull.
"""

import os
import re
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional

from concrete_sync.exceptions import StagingPartialFailure, excerpt
from concrete_sync.utils.filesystem import ensure_dir_exists, normalize_permissions, prune_dumps, timestamp
from concrete_sync.utils.mirror import get_mirror

DATABASE_DIR = "database"
FILES_DIR = "files"
LATEST_DUMP = "latest.sql.gz"

_DUMP_NAME = re.compile(r"_(\d{8}_\d{6})\.sql(\.gz)?$")


class SnapshotBuilder:
    """
    Stages payloads into a working clone and applies them back to a site
    """

    def __init__(self, settings, mirror=None, verbose: bool = False):
        """
        Initializes the builder

        Args:
            settings: Settings of the current invocation
            mirror: Mirror implementation; resolved from settings.mirror_tool by default
            verbose: Enable detailed output
        """
        self.settings = settings
        self.verbose = verbose
        self.mirror = mirror or get_mirror(settings.resolved_mirror_tool(), verbose=verbose)
        self.failures: List[StagingPartialFailure] = []

    def _mirror(self, category: str, source: Path, dest: Path, exclusions: Dict[str, str]) -> bool:
        """
        Mirrors one directory, recording a failure instead of raising
        """
        if not source.is_dir():
            print(f"⚠️ {category}: {source} does not exist, skipping")
            return False

        if self.verbose:
            print(f"🔄 {category}: {source} -> {dest}")

        success, output = self.mirror.sync(source, dest, exclusions)
        if not success:
            failure = StagingPartialFailure(category, str(source), excerpt(output, 300) or "unknown error")
            self.failures.append(failure)
            print(f"⚠️ {failure.message}")
            return False
        return True

    def stage_configuration(self, clone, source_root: Path, exclusions: Optional[Dict[str, str]] = None) -> List[str]:
        """
        Mirrors the configuration, theme, block and package trees into the clone

        Args:
            clone: Working clone
            source_root: Site root
            exclusions: Exclusion patterns (configuration exclusions by default)

        Returns:
            List[str]: Snapshot paths that were staged
        """
        if exclusions is None:
            exclusions = self.settings.configuration_exclusions

        print("📦 Staging configuration...")
        staged = []
        for target, source in self.settings.config_paths.items():
            if self._mirror("configuration", Path(source_root) / source, clone.path / target, exclusions):
                staged.append(target)

        print(f"✅ Configuration staged ({len(staged)} of {len(self.settings.config_paths)} directories)")
        return staged

    def stage_uploaded_files(self, clone, source_root: Path) -> bool:
        """
        Mirrors the uploaded media directory into files/
        """
        print("📦 Staging uploaded files...")
        staged = self._mirror(
            "uploaded files",
            Path(source_root) / self.settings.uploaded_files_path,
            clone.path / FILES_DIR,
            self.settings.uploaded_files_exclusions,
        )
        if staged:
            print("✅ Uploaded files staged")
        return staged

    def stage_database_dump(self, clone, dump_producer: Callable[[Path], object], now: Optional[float] = None) -> Path:
        """
        Writes a fresh dump under database/, refreshes the latest alias and prunes older dumps

        Args:
            clone: Working clone
            dump_producer: Callable writing a .sql.gz dump to the given path
            now: Epoch seconds for the dump name, defaults to the current time

        Returns:
            Path: The new dump file

        Raises:
            ExportFailed: Propagated from the producer
        """
        print("📦 Staging database dump...")
        database_dir = clone.path / DATABASE_DIR
        ensure_dir_exists(database_dir)

        dump_path = database_dir / f"{self.settings.effective_dump_prefix}_{timestamp(now)}.sql.gz"
        dump_producer(dump_path)

        latest = database_dir / LATEST_DUMP
        if latest.exists() or latest.is_symlink():
            latest.unlink()
        try:
            os.symlink(dump_path.name, latest)
        except OSError:
            shutil.copy2(dump_path, latest)

        for removed in prune_dumps(database_dir, keep=dump_path):
            if self.verbose:
                print(f"   - pruned old dump: {removed.name}")

        print(f"✅ Database dump staged: {DATABASE_DIR}/{dump_path.name}")
        return dump_path

    def apply_configuration(self, clone, dest_root: Path) -> List[str]:
        """
        Mirrors the snapshot configuration trees onto the site

        Destination-only files are kept. Permissions are normalised afterwards.

        Returns:
            List[str]: Site paths that were updated
        """
        print("📥 Applying configuration...")
        applied = []
        for target, source in self.settings.config_paths.items():
            snapshot_dir = clone.path / target
            if not snapshot_dir.is_dir():
                if self.verbose:
                    print(f"ℹ️ {target} is not part of this snapshot")
                continue
            destination = Path(dest_root) / source
            if self._mirror("configuration", snapshot_dir, destination, self.settings.configuration_exclusions):
                normalize_permissions(destination, self.settings.configuration_exclusions.values())
                applied.append(source)

        if applied:
            print(f"✅ Configuration applied ({len(applied)} directories)")
        else:
            print("⚠️ No configuration found in snapshot")
        return applied

    def apply_uploaded_files(self, clone, dest_root: Path) -> bool:
        """
        Mirrors files/ from the snapshot onto the uploaded media directory
        """
        snapshot_dir = clone.path / FILES_DIR
        if not snapshot_dir.is_dir():
            print("⚠️ No uploaded files found in snapshot")
            return False

        print("📥 Applying uploaded files...")
        destination = Path(dest_root) / self.settings.uploaded_files_path
        if not self._mirror("uploaded files", snapshot_dir, destination, self.settings.uploaded_files_exclusions):
            return False

        normalize_permissions(destination, self.settings.uploaded_files_exclusions.values())
        print("✅ Uploaded files applied")
        return True

    def locate_database_dump(self, clone) -> Optional[Path]:
        """
        Finds the dump to import: latest.sql.gz, else the newest timestamped dump
        """
        database_dir = clone.path / DATABASE_DIR
        if not database_dir.is_dir():
            return None

        latest = database_dir / LATEST_DUMP
        if latest.exists():
            return latest

        dumps = [path for path in database_dir.iterdir() if _DUMP_NAME.search(path.name)]
        if not dumps:
            return None
        return max(dumps, key=lambda path: _DUMP_NAME.search(path.name).group(1))

    def report_failures(self):
        if not self.failures:
            return
        print(f"⚠️ {len(self.failures)} path(s) could not be mirrored:")
        for failure in self.failures:
            print(f"   - {failure.category}: {failure.path} ({failure.reason})")
