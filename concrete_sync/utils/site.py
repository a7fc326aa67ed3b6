"""
Site maintenance collaborators: dependency installation and cache clearing
"""

import shlex
import shutil
import subprocess
from pathlib import Path
from typing import List


def _run_streaming(cmd: List[str], cwd: Path, verbose: bool = False) -> int:
    """
    Runs a command in the site root, echoing its output line by line
    """
    if verbose:
        print(f"🔄 Executing: {' '.join(shlex.quote(str(arg)) for arg in cmd)}")

    process = subprocess.Popen(
        cmd,
        cwd=str(cwd),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        bufsize=1
    )
    for line in process.stdout:
        print(f"   {line.rstrip()}")
    process.wait()
    return process.returncode


def install_dependencies(settings, verbose: bool = False) -> bool:
    """
    Runs composer install in the site root

    A missing or failing composer is reported as a warning: the snapshot
    has already been applied at this point.

    Args:
        settings: Settings of the current invocation
        verbose: Show the executed command

    Returns:
        bool: True if dependencies were installed
    """
    if settings.composer_install == "skip":
        print("ℹ️ Dependency installation disabled (composer.install: skip)")
        return False

    if not (settings.site_path / "composer.json").exists():
        print("ℹ️ No composer.json in site root, skipping dependency installation")
        return False

    cmd = list(settings.composer_command)
    if not shutil.which(cmd[0]):
        print(f"⚠️ {cmd[0]} not found, dependencies were not installed")
        print("   Set COMPOSER_DIR in .deployment-config or install composer, then run 'concrete-sync fix'")
        return False

    cmd.append("install")
    if settings.is_production:
        cmd.extend(["--no-dev", "--optimize-autoloader"])
    cmd.append("--no-interaction")

    print("📦 Installing dependencies...")
    try:
        returncode = _run_streaming(cmd, settings.site_path, verbose=verbose)
    except OSError as e:
        print(f"⚠️ Could not run composer: {e}")
        return False

    if returncode != 0:
        print(f"⚠️ composer install failed (exit code {returncode})")
        print("   Fix the problem and run 'concrete-sync fix' to retry")
        return False

    print("✅ Dependencies installed")
    return True


def clear_caches(settings, verbose: bool = False) -> bool:
    """
    Clears the Concrete CMS caches with the bundled CLI, when present

    Returns:
        bool: True if the caches were cleared
    """
    concrete_cli = settings.site_path / "vendor" / "bin" / "concrete"
    if not concrete_cli.exists():
        print("ℹ️ Concrete CLI not found (vendor/bin/concrete), skipping cache clearing")
        return False

    print("🧹 Clearing caches...")
    try:
        returncode = _run_streaming([str(concrete_cli), "c5:clear-cache"], settings.site_path, verbose=verbose)
    except OSError as e:
        print(f"⚠️ Could not run the Concrete CLI: {e}")
        return False

    if returncode != 0:
        print(f"⚠️ Cache clearing failed (exit code {returncode})")
        return False

    print("✅ Caches cleared")
    return True
