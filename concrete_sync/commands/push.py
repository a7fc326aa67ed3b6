"""
Push: publish the local site state as a new snapshot
"""

import socket
import time
from typing import Callable, Optional

from concrete_sync.commands import report_error
from concrete_sync.exceptions import ExportFailed, OperationCancelled, SyncError
from concrete_sync.sync.builder import SnapshotBuilder
from concrete_sync.sync.database import DatabaseExporter
from concrete_sync.sync.repository import SnapshotRepository
from concrete_sync.sync.tags import snapshot_tag_name
from concrete_sync.utils.prompts import ask_toggle, confirm


class SnapshotPusher:
    """
    Stages configuration, uploaded files and database into one commit,
    pushes it and tags it
    """

    def __init__(self, settings, repository: Optional[SnapshotRepository] = None,
                 builder: Optional[SnapshotBuilder] = None, exporter: Optional[DatabaseExporter] = None,
                 verbose: bool = False, ask: Callable[[str], str] = input):
        self.settings = settings
        self.verbose = verbose
        self.ask = ask
        self.repository = repository or SnapshotRepository.from_settings(settings, verbose=verbose)
        self.builder = builder or SnapshotBuilder(settings, verbose=verbose)
        self.exporter = exporter or DatabaseExporter(settings.dump_options, verbose=verbose)

    def show_plan(self):
        settings = self.settings
        print("\n🚀 Snapshot push plan")
        print(f"   Environment:    {settings.environment}")
        print(f"   Site:           {settings.site_path}")
        print(f"   Repository:     {settings.repository} ({settings.branch})")
        print(f"   Configuration:  {', '.join(settings.config_paths) or 'none'}")
        print(f"   Uploaded files: {settings.uploaded_files_mode}")
        print(f"   Database:       {settings.database_mode}"
              + (f" ({settings.database.describe()})" if settings.sync_database else ""))
        print()

    def _toggle(self, mode: str, question: str, assume_yes: bool) -> bool:
        if assume_yes and mode == "ask":
            return True
        return ask_toggle(mode, question, ask=self.ask)

    def run(self, assume_yes: bool = False, now: Optional[float] = None) -> Optional[str]:
        """
        Executes the push

        Args:
            assume_yes: Skip the confirmation and answer yes to "ask" toggles
            now: Epoch seconds used for names, defaults to the current time

        Returns:
            Optional[str]: The created tag, or None if no tag was created

        Raises:
            OperationCancelled: If the operator declines
            ExportFailed: After publishing the other categories, if the database export failed
            SyncError: On any other fatal error
        """
        settings = self.settings
        self.show_plan()

        if not assume_yes and not confirm("Push a new snapshot of this site?", ask=self.ask):
            raise OperationCancelled("Push cancelled by operator")

        include_files = self._toggle(settings.uploaded_files_mode, "Include uploaded files in this snapshot?",
                                     assume_yes)
        include_database = self._toggle(settings.database_mode, "Include the database in this snapshot?",
                                        assume_yes)

        now = time.time() if now is None else now
        tag = None

        with self.repository.open_working_clone(settings.repository, settings.branch) as clone:
            self.builder.stage_configuration(clone, settings.site_path)

            if include_files:
                self.builder.stage_uploaded_files(clone, settings.site_path)
            else:
                print("ℹ️ Uploaded files skipped")

            export_error = None
            if include_database:
                try:
                    self.builder.stage_database_dump(
                        clone,
                        lambda destination: self.exporter.export(settings.database, settings.exclude_tables,
                                                                 destination),
                        now=now,
                    )
                except ExportFailed as e:
                    # Configuration and files are still published, untagged
                    export_error = e
                    print("⚠️ Database export failed, pushing configuration and uploaded files without a tag")
            else:
                print("ℹ️ Database skipped")

            self.builder.report_failures()

            stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(now))
            message = f"Snapshot from {settings.environment} ({socket.gethostname()}) at {stamp}"
            if export_error:
                message += " (database not refreshed)"
            commit = self.repository.commit_all(clone, message)
            if commit.commit_id is None:
                if export_error:
                    raise export_error
                print("⚠️ The snapshot is empty, nothing was pushed")
                return None

            self.repository.push_branch(clone, settings.branch)
            if export_error:
                raise export_error

            if commit.changed or settings.tag_unchanged:
                name = snapshot_tag_name(settings.tag_type, now=now)
                if self.repository.create_and_push_tag(clone, name):
                    tag = name

        print("\n✅ Push completed")
        if tag:
            print(f"   Snapshot tag: {tag}")
        return tag


def push_snapshot(settings, assume_yes: bool = False, verbose: bool = False,
                  ask: Callable[[str], str] = input) -> bool:
    """
    Pushes the local site as a new snapshot

    Args:
        settings: Validated settings
        assume_yes: Skip the confirmation prompt
        verbose: Enable detailed output
        ask: Input function for prompts

    Returns:
        bool: True if the push succeeded

    Raises:
        OperationCancelled: If the operator declines
    """
    try:
        SnapshotPusher(settings, verbose=verbose, ask=ask).run(assume_yes=assume_yes)
        return True
    except OperationCancelled:
        raise
    except SyncError as e:
        report_error(e)
        return False
