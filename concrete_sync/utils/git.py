"""
Utilities for running the git client

All interaction with the git binary goes through GitRunner so that the
repository layer can be exercised with a test double.
"""

import os
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Union

from concrete_sync.exceptions import GitCommandError


class GitRunner:
    """
    Runs git commands inside a working directory
    """

    def __init__(self, verbose: bool = False):
        """
        Initializes the runner

        Args:
            verbose: If True, prints every git command before running it
        """
        self.verbose = verbose

    def run(self, args: Sequence[str], cwd: Union[str, Path], check: bool = True) -> subprocess.CompletedProcess:
        """
        Executes a git command

        Args:
            args: Arguments after "git"
            cwd: Directory to run in
            check: If True, a nonzero exit raises GitCommandError

        Returns:
            subprocess.CompletedProcess: The finished process (text mode)
        """
        cmd: List[str] = ["git", *args]
        if self.verbose:
            print(f"🔄 Executing: {' '.join(shlex.quote(str(arg)) for arg in cmd)}")

        # Never block on a credential prompt without a terminal
        env = dict(os.environ)
        env.setdefault("GIT_TERMINAL_PROMPT", "1" if _has_terminal() else "0")

        result = subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
            env=env,
        )

        if self.verbose and result.stderr.strip():
            print(result.stderr.rstrip())

        if check and result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result

    def succeeds(self, args: Sequence[str], cwd: Union[str, Path]) -> bool:
        """
        Executes a git command and reports whether it exited with 0
        """
        return self.run(args, cwd, check=False).returncode == 0


def _has_terminal() -> bool:
    try:
        return os.isatty(0)
    except (OSError, ValueError):
        return False


def is_https_url(url: Optional[str]) -> bool:
    return bool(url) and url.startswith("https://")
