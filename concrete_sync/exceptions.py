"""
Error types raised by concrete_sync

Every fatal error carries a human readable message and, when there is an
obvious fix, a remediation hint that the command layer prints below it.
"""

from typing import List, Optional, Sequence


class SyncError(Exception):
    """
    Base class for all synchronization errors
    """

    def __init__(self, message: str, remediation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.remediation = remediation


class PrerequisiteMissing(SyncError):
    """
    A required external tool or configuration value is missing
    """


class RemoteUnreachable(SyncError):
    """
    The snapshot repository could not be contacted (network or auth)
    """


class PushConflict(SyncError):
    """
    The remote branch kept rejecting the push after one pull-and-retry
    """

    def __init__(self, message: str, clone_path: Optional[str] = None, remediation: Optional[str] = None):
        super().__init__(message, remediation=remediation)
        self.clone_path = clone_path


class RefNotFound(SyncError):
    """
    The requested tag or branch does not exist in the snapshot repository
    """


class ExportFailed(SyncError):
    """
    The database dump tool exited with a nonzero status
    """

    def __init__(self, exit_code: int, stderr_excerpt: str = "", remediation: Optional[str] = None):
        message = f"Database export failed (exit code {exit_code})"
        if stderr_excerpt:
            message += f": {stderr_excerpt}"
        super().__init__(message, remediation=remediation)
        self.exit_code = exit_code
        self.stderr_excerpt = stderr_excerpt


class ImportFailed(SyncError):
    """
    A step of the database import failed
    """

    def __init__(self, step: str, exit_code: Optional[int] = None, stderr_excerpt: str = "",
                 remediation: Optional[str] = None):
        message = f"Database import failed while {step}"
        if exit_code is not None:
            message += f" (exit code {exit_code})"
        if stderr_excerpt:
            message += f": {stderr_excerpt}"
        super().__init__(message, remediation=remediation)
        self.step = step
        self.exit_code = exit_code
        self.stderr_excerpt = stderr_excerpt


class StagingPartialFailure(SyncError):
    """
    One payload path could not be mirrored; the others were still processed.

    Never raised out of the builder: instances are collected and reported.
    """

    def __init__(self, category: str, path: str, reason: str):
        super().__init__(f"Could not mirror {category} path '{path}': {reason}")
        self.category = category
        self.path = path
        self.reason = reason


class OperationCancelled(SyncError):
    """
    The operator declined a confirmation prompt
    """


class GitCommandError(SyncError):
    """
    A git invocation exited with a nonzero status
    """

    def __init__(self, args: Sequence[str], returncode: int, stderr: str = ""):
        command = "git " + " ".join(args)
        message = f"'{command}' failed with exit code {returncode}"
        if stderr:
            message += f": {stderr.strip()}"
        super().__init__(message)
        self.args_list: List[str] = list(args)
        self.returncode = returncode
        self.stderr = stderr


def excerpt(text: str, limit: int = 500) -> str:
    """
    Returns the tail of a (possibly long) stderr output
    """
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]
