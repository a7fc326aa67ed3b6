"""
Utilities for filesystem operations
"""

import os
import shutil
import stat
import time
from pathlib import Path
from typing import Iterable, List, Optional

from concrete_sync.utils.mirror import is_excluded

DIRECTORY_MODE = 0o755
FILE_MODE = 0o644


def ensure_dir_exists(directory: Path) -> None:
    """
    Ensures that a directory exists, creating it if necessary

    Args:
        directory: Directory path
    """
    Path(directory).mkdir(parents=True, exist_ok=True)


def remove_directory(directory: Path) -> None:
    """
    Removes a directory tree if it exists
    """
    directory = Path(directory)
    if directory.is_symlink() or directory.is_file():
        directory.unlink()
        return
    if not directory.exists():
        return
    shutil.rmtree(directory)


def timestamp(now: Optional[float] = None) -> str:
    """
    Returns a compact timestamp (YYYYMMDD_HHMMSS) used in dump file names
    """
    return time.strftime("%Y%m%d_%H%M%S", time.localtime(now))


def normalize_permissions(root: Path, exclusions: Iterable[str] = (), dir_mode: int = DIRECTORY_MODE,
                          file_mode: int = FILE_MODE) -> int:
    """
    Sets fixed permissions on a tree: traversable directories, no execute bits on files

    Excluded subtrees (vendor/, node_modules/ ...) keep their modes.

    Args:
        root: Directory to walk
        exclusions: Exclusion patterns, relative to root
        dir_mode: Mode applied to every directory (root included)
        file_mode: Mode applied to every regular file

    Returns:
        int: Number of entries whose mode was changed
    """
    root = Path(root)
    if not root.is_dir():
        return 0

    patterns = list(exclusions)
    changed = 0
    for current, dirs, files in os.walk(root):
        relative_dir = Path(current).relative_to(root)
        if patterns:
            dirs[:] = [name for name in dirs if not is_excluded((relative_dir / name).as_posix(), True, patterns)]
            files = [name for name in files if not is_excluded((relative_dir / name).as_posix(), False, patterns)]

        entries = [(Path(current), dir_mode)]
        entries.extend((Path(current) / name, file_mode) for name in files)
        for path, mode in entries:
            if path.is_symlink():
                continue
            if stat.S_IMODE(path.stat().st_mode) != mode:
                os.chmod(path, mode)
                changed += 1
    return changed


def prune_dumps(directory: Path, keep: Path, pattern: str = "*_*.sql.gz") -> List[Path]:
    """
    Removes every dump in a directory except the one to keep

    Args:
        directory: Directory holding the dumps
        keep: Dump file that stays
        pattern: Glob matching dump files

    Returns:
        List[Path]: Removed files
    """
    removed = []
    for candidate in sorted(Path(directory).glob(pattern)):
        if candidate.name == Path(keep).name or candidate.is_symlink():
            continue
        candidate.unlink()
        removed.append(candidate)
    return removed


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    size = size_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
