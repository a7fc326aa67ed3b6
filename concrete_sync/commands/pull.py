"""
Pull: replace the local site state with a snapshot
"""

from typing import Callable, Optional

from concrete_sync.commands import report_error
from concrete_sync.exceptions import OperationCancelled, SyncError
from concrete_sync.sync.builder import SnapshotBuilder
from concrete_sync.sync.database import DatabaseImporter
from concrete_sync.sync.repository import SnapshotRepository
from concrete_sync.sync.tags import LATEST, choose_tag
from concrete_sync.utils.prompts import ask_toggle, confirm
from concrete_sync.utils.site import clear_caches, install_dependencies


class SnapshotPuller:
    """
    Selects a snapshot, checks it out and applies it to the site
    """

    def __init__(self, settings, repository: Optional[SnapshotRepository] = None,
                 builder: Optional[SnapshotBuilder] = None, importer: Optional[DatabaseImporter] = None,
                 verbose: bool = False, ask: Callable[[str], str] = input,
                 install: Callable = install_dependencies, clear: Callable = clear_caches):
        self.settings = settings
        self.verbose = verbose
        self.ask = ask
        self.repository = repository or SnapshotRepository.from_settings(settings, verbose=verbose)
        self.builder = builder or SnapshotBuilder(settings, verbose=verbose)
        self.importer = importer or DatabaseImporter(verbose=verbose)
        self.install = install
        self.clear = clear

    def show_plan(self, ref: Optional[str]):
        settings = self.settings
        print("\n📥 Snapshot pull plan")
        print(f"   Environment:    {settings.environment}")
        print(f"   Site:           {settings.site_path}")
        print(f"   Repository:     {settings.repository} ({settings.branch})")
        print(f"   Snapshot:       {ref or 'choose interactively'}")
        print(f"   Uploaded files: {settings.uploaded_files_mode}")
        print(f"   Database:       {settings.database_mode}"
              + (f" ({settings.database.describe()})" if settings.sync_database else ""))
        if settings.sync_database:
            print("   ⚠️ The local database will be dropped and replaced")
        print()

    def _toggle(self, mode: str, question: str, assume_yes: bool) -> bool:
        if assume_yes and mode == "ask":
            return True
        return ask_toggle(mode, question, ask=self.ask)

    def select(self, clone, ref: Optional[str]) -> str:
        if ref:
            return ref
        tags = self.repository.list_tags(clone)
        return choose_tag(
            tags,
            page_size=self.settings.page_size,
            ask=self.ask,
            confirm_latest=lambda: confirm("Continue with the latest snapshot?", ask=self.ask),
        )

    def run(self, ref: Optional[str] = None, assume_yes: bool = False) -> str:
        """
        Executes the pull

        Args:
            ref: Tag name, "latest", or None to choose interactively
            assume_yes: Skip the confirmation and answer yes to "ask" toggles

        Returns:
            str: The applied ref

        Raises:
            OperationCancelled: If the operator declines
            SyncError: On any fatal error
        """
        settings = self.settings
        self.show_plan(ref)

        if not assume_yes and not confirm("Apply a snapshot to this site?", ask=self.ask):
            raise OperationCancelled("Pull cancelled by operator")

        with self.repository.open_working_clone(settings.repository, settings.branch) as clone:
            ref = self.select(clone, ref)
            commit_id = self.repository.checkout_ref(clone, ref)
            if self.verbose:
                print(f"ℹ️ Snapshot commit: {commit_id}")

            self.builder.apply_configuration(clone, settings.site_path)

            if self._toggle(settings.uploaded_files_mode, "Apply uploaded files from the snapshot?", assume_yes):
                self.builder.apply_uploaded_files(clone, settings.site_path)
            else:
                print("ℹ️ Uploaded files skipped")

            self.install(settings, verbose=self.verbose)

            if self._toggle(settings.database_mode, "Replace the local database with the snapshot?", assume_yes):
                dump = self.builder.locate_database_dump(clone)
                if dump is None:
                    print("⚠️ No database dump found in snapshot, database left unchanged")
                else:
                    self.importer.import_dump(settings.database, dump)
            else:
                print("ℹ️ Database skipped")

            self.builder.report_failures()
            self.clear(settings, verbose=self.verbose)

        print(f"\n✅ Pull completed ({'latest' if ref == LATEST else ref})")
        return ref


def pull_snapshot(settings, ref: Optional[str] = None, assume_yes: bool = False, verbose: bool = False,
                  ask: Callable[[str], str] = input) -> bool:
    """
    Applies a snapshot to the local site

    Args:
        settings: Validated settings
        ref: Tag name, "latest", or None to choose interactively
        assume_yes: Skip the confirmation prompt
        verbose: Enable detailed output
        ask: Input function for prompts

    Returns:
        bool: True if the pull succeeded

    Raises:
        OperationCancelled: If the operator declines
    """
    try:
        SnapshotPuller(settings, verbose=verbose, ask=ask).run(ref=ref, assume_yes=assume_yes)
        return True
    except OperationCancelled:
        raise
    except SyncError as e:
        report_error(e)
        return False
