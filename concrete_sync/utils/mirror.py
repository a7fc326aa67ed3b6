"""
Additive directory mirroring

Both mirrors copy new and changed files from a source tree into a
destination tree and never delete destination-only files. Exclusions use
the key -> pattern dictionaries from the configuration, with rsync filter
semantics:

- ``name`` matches a file or directory with that name at any depth
- ``name/`` matches directories only
- ``a/b/`` (inner slash) matches the trailing components of a path
- ``/a`` is anchored at the root of the transfer
"""

import fnmatch
import os
import shlex
import shutil
import subprocess
import tempfile
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Tuple

from tqdm import tqdm


def is_excluded(relative_path: str, is_dir: bool, patterns: Iterable[str]) -> bool:
    """
    Checks a path (relative to the transfer root) against exclusion patterns

    Args:
        relative_path: POSIX path relative to the mirrored root
        is_dir: Whether the path is a directory
        patterns: Exclusion patterns

    Returns:
        bool: True if any pattern excludes the path
    """
    parts = PurePosixPath(relative_path).parts
    if not parts:
        return False

    for raw in patterns:
        if not raw:
            continue
        pattern = raw
        dir_only = pattern.endswith("/")
        if dir_only:
            if not is_dir:
                continue
            pattern = pattern.rstrip("/")
        anchored = pattern.startswith("/")
        pattern = pattern.lstrip("/")
        if not pattern:
            continue

        pattern_parts = PurePosixPath(pattern).parts
        if anchored:
            if len(parts) == len(pattern_parts) and _parts_match(parts, pattern_parts):
                return True
        elif len(parts) >= len(pattern_parts) and _parts_match(parts[-len(pattern_parts):], pattern_parts):
            return True
    return False


def _parts_match(parts: Tuple[str, ...], pattern_parts: Tuple[str, ...]) -> bool:
    return all(fnmatch.fnmatchcase(part, pattern) for part, pattern in zip(parts, pattern_parts))


def run_rsync(
    source: str,
    dest: str,
    options: List[str] = None,
    exclusions: Dict[str, str] = None,
    verbose: bool = False
) -> Tuple[bool, str]:
    """
    Executes rsync to mirror one local directory into another

    Args:
        source: Source directory
        dest: Destination directory
        options: Options for rsync (additive, no --delete, by default)
        exclusions: Dictionary of patterns to exclude (key -> pattern)
        verbose: If True, shows rsync output in real time

    Returns:
        Tuple[bool, str]: True if the synchronization was successful, and the command output
    """
    if options is None:
        options = ["-rlt"]

    cmd = ["rsync", *options]

    exclusions = exclusions or {}
    exclude_file = None

    if exclusions:
        exclude_file = tempfile.NamedTemporaryFile(mode="w", suffix=".rsync-filter", delete=False)
        if verbose:
            print(f"📋 Applying {len(exclusions)} exclusion patterns:")
        with exclude_file:
            for key, pattern in exclusions.items():
                if verbose:
                    print(f"   - {key}: {pattern}")
                exclude_file.write(f"- {pattern}\n")
        cmd.extend(["--filter", f"merge {exclude_file.name}"])

    # Trailing slash: copy the contents, not the directory itself
    cmd.append(source.rstrip("/") + "/")
    cmd.append(dest)

    if verbose:
        print(f"🔄 Executing: {' '.join(shlex.quote(str(arg)) for arg in cmd)}")

    try:
        process = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False
        )
    except OSError as e:
        return False, str(e)
    finally:
        if exclude_file:
            os.unlink(exclude_file.name)

    if verbose and process.stdout:
        print(process.stdout.rstrip())

    return process.returncode == 0, process.stdout


class RsyncMirror:
    """
    Mirrors with the rsync binary
    """

    name = "rsync"

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def sync(self, source: Path, dest: Path, exclusions: Dict[str, str]) -> Tuple[bool, str]:
        Path(dest).mkdir(parents=True, exist_ok=True)
        return run_rsync(str(source), str(dest), exclusions=exclusions, verbose=self.verbose)


class CopyMirror:
    """
    Mirrors in-process, for hosts without rsync

    A file is copied when it is missing at the destination or differs in
    size or modification time.
    """

    name = "copy"

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def sync(self, source: Path, dest: Path, exclusions: Dict[str, str]) -> Tuple[bool, str]:
        source = Path(source)
        dest = Path(dest)
        patterns = list((exclusions or {}).values())

        try:
            pending = list(self._walk(source, patterns))
            copied = 0
            for relative in tqdm(pending, desc=f"Copying {source.name}", unit="file",
                                 disable=not self.verbose or not pending):
                src_file = source / relative
                dest_file = dest / relative
                if src_file.is_symlink():
                    link_target = os.readlink(src_file)
                    if dest_file.is_symlink() and os.readlink(dest_file) == link_target:
                        continue
                    dest_file.parent.mkdir(parents=True, exist_ok=True)
                    if dest_file.is_symlink() or dest_file.is_file():
                        dest_file.unlink()
                    os.symlink(link_target, dest_file)
                else:
                    if dest_file.is_symlink() or (dest_file.exists() and not _differs(src_file, dest_file)):
                        continue
                    dest_file.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(src_file, dest_file)
                copied += 1
            dest.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return False, str(e)

        return True, f"{copied} files copied"

    def _walk(self, source: Path, patterns: List[str]):
        for current, dirs, files in os.walk(source):
            relative_dir = Path(current).relative_to(source)

            # Prune excluded directories in place so os.walk skips them
            kept = []
            for name in sorted(dirs):
                relative = (relative_dir / name).as_posix()
                if is_excluded(relative, True, patterns):
                    if self.verbose:
                        print(f"   - excluded: {relative}/")
                    continue
                kept.append(name)
            dirs[:] = kept

            for name in sorted(files):
                relative = relative_dir / name
                if is_excluded(relative.as_posix(), False, patterns):
                    continue
                yield relative


def _differs(src: Path, dest: Path) -> bool:
    src_stat = src.stat()
    dest_stat = dest.stat()
    return src_stat.st_size != dest_stat.st_size or int(src_stat.st_mtime) != int(dest_stat.st_mtime)


def get_mirror(tool: str, verbose: bool = False):
    """
    Returns the mirror implementation for a resolved tool name ("rsync" or "copy")
    """
    if tool == "rsync":
        return RsyncMirror(verbose=verbose)
    if tool == "copy":
        return CopyMirror(verbose=verbose)
    raise ValueError(f"Unknown mirror tool: {tool}")
