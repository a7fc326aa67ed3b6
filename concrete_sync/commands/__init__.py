"""
Command orchestrators invoked by the CLI
"""

from concrete_sync.exceptions import SyncError


def report_error(error: SyncError):
    """
    Prints a fatal error with its remediation hint
    """
    print(f"❌ {error.message}")
    if error.remediation:
        print(f"   👉 {error.remediation}")
