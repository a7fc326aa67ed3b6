"""
Tags: list the snapshots available in the repository
"""

from typing import List, Optional

from concrete_sync.commands import report_error
from concrete_sync.exceptions import SyncError
from concrete_sync.sync.repository import SnapshotRepository
from concrete_sync.sync.tags import LATEST


def fetch_snapshot_tags(settings, repository: Optional[SnapshotRepository] = None,
                        verbose: bool = False) -> List[str]:
    """
    Returns the remote snapshot tags, newest first
    """
    repository = repository or SnapshotRepository.from_settings(settings, verbose=verbose)
    with repository.open_working_clone(settings.repository, settings.branch) as clone:
        return repository.list_tags(clone)


def list_snapshot_tags(settings, limit: Optional[int] = None, verbose: bool = False) -> bool:
    """
    Prints the snapshot tags, numbered as the pull selector numbers them

    Args:
        settings: Validated settings
        limit: Show at most this many tags
        verbose: Enable detailed output

    Returns:
        bool: True if the tags could be listed
    """
    try:
        tags = fetch_snapshot_tags(settings, verbose=verbose)
    except SyncError as e:
        report_error(e)
        return False

    if not tags:
        print("ℹ️ No snapshot tags found. Run 'concrete-sync push' to create the first snapshot.")
        return True

    shown = tags[:limit] if limit else tags
    print(f"\n🏷️ Snapshots in {settings.repository} ({len(tags)} total, newest first):")
    print(f"  0) {LATEST} (most recent from branch {settings.branch})")
    for number, tag in enumerate(shown, start=1):
        print(f"  {number}) {tag}")
    if len(shown) < len(tags):
        print(f"  ... {len(tags) - len(shown)} more")
    return True
