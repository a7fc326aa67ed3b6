"""
Fix: repair a local environment after an interrupted or partial run
"""

from concrete_sync.commands import report_error
from concrete_sync.exceptions import SyncError
from concrete_sync.utils.filesystem import normalize_permissions, remove_directory
from concrete_sync.utils.site import clear_caches, install_dependencies


def fix_environment(settings, verbose: bool = False) -> bool:
    """
    Removes a stale working clone, normalises permissions, reinstalls
    dependencies and clears caches

    Args:
        settings: Validated settings
        verbose: Enable detailed output

    Returns:
        bool: True if the repair completed
    """
    print("🔧 Repairing environment...")

    try:
        if settings.clone_dir.exists():
            print(f"🧹 Removing stale working clone: {settings.clone_dir}")
            remove_directory(settings.clone_dir)

        targets = [(settings.uploaded_files_dir, settings.uploaded_files_exclusions)]
        targets.extend((settings.site_path / source, settings.configuration_exclusions)
                       for source in settings.config_paths.values())

        for target, exclusions in targets:
            if not target.is_dir():
                continue
            changed = normalize_permissions(target, exclusions.values())
            if changed or verbose:
                print(f"✅ Permissions normalised: {target} ({changed} entries changed)")
    except OSError as e:
        report_error(SyncError(f"Could not repair {settings.site_path}: {e}",
                               remediation="Check that you own the site files"))
        return False

    install_dependencies(settings, verbose=verbose)
    clear_caches(settings, verbose=verbose)

    print("✅ Environment repaired")
    return True
