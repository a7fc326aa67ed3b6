"""
Commands to create standalone database backups
"""

from pathlib import Path
from typing import Optional

from concrete_sync.commands import report_error
from concrete_sync.exceptions import SyncError
from concrete_sync.sync.database import DatabaseExporter
from concrete_sync.utils.filesystem import ensure_dir_exists, timestamp


def create_database_backup(settings, output_dir: Optional[str] = None, verbose: bool = False,
                           exporter: Optional[DatabaseExporter] = None, now: Optional[float] = None) -> Path:
    """
    Dumps the configured database into a timestamped gzip file

    Args:
        settings: Validated settings
        output_dir: Directory where to save the backup (defaults to <site>/backups)
        verbose: Enable detailed output
        exporter: Exporter to use, a DatabaseExporter by default
        now: Epoch seconds for the file name

    Returns:
        Path: Path of the created backup

    Raises:
        ExportFailed: If mysqldump fails
    """
    backup_dir = Path(output_dir) if output_dir else settings.backup_dir
    backup_path = backup_dir / f"db_{timestamp(now)}.sql.gz"

    print("📦 Creating database backup...")
    print(f"   Database: {settings.database.describe()}")
    print(f"   Destination: {backup_path}")

    ensure_dir_exists(backup_dir)
    exporter = exporter or DatabaseExporter(settings.dump_options, verbose=verbose)
    exporter.export(settings.database, settings.exclude_tables, backup_path)

    print(f"📦 Backup file created: {backup_path}")
    return backup_path


def backup_database(settings, output_dir: Optional[str] = None, verbose: bool = False) -> bool:
    """
    Creates a database backup, reporting errors instead of raising

    Returns:
        bool: True if the backup was created
    """
    try:
        create_database_backup(settings, output_dir=output_dir, verbose=verbose)
        return True
    except SyncError as e:
        report_error(e)
        return False
