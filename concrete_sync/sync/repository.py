"""
Snapshot repository access

This module wraps the remote Git repository that carries snapshots. A
snapshot is one commit on the tracked branch; tags are named pointers to
snapshot commits. All work happens in a disposable working clone that is
created fresh for every invocation and removed when it is released.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from concrete_sync.exceptions import (
    GitCommandError,
    PushConflict,
    RefNotFound,
    RemoteUnreachable,
    excerpt,
)
from concrete_sync.sync.tags import LATEST, sort_tags
from concrete_sync.utils.filesystem import ensure_dir_exists, remove_directory
from concrete_sync.utils.git import GitRunner, is_https_url

REMOTE = "origin"


@dataclass(frozen=True)
class CommitResult:
    """
    Outcome of commit_all
    """

    changed: bool
    commit_id: Optional[str]


@dataclass(frozen=True)
class PushResult:
    """
    Outcome of push_branch
    """

    pushed: bool
    attempts: int


class WorkingClone:
    """
    Handle on the local working clone

    Used as a context manager: the directory is removed on every exit path
    unless it was retained for manual inspection.
    """

    def __init__(self, path: Path, remote_url: str, branch: str, has_remote_branch: bool):
        self.path = Path(path)
        self.remote_url = remote_url
        self.branch = branch
        self.has_remote_branch = has_remote_branch
        self.retained = False

    def retain(self):
        """
        Keeps the clone on disk after release
        """
        self.retained = True

    def cleanup(self):
        if self.retained:
            print(f"ℹ️ Working clone kept for inspection: {self.path}")
            return
        remove_directory(self.path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()


class SnapshotRepository:
    """
    Atomic, retry-safe access to the remote snapshot store
    """

    def __init__(self, clone_dir: Path, runner: Optional[GitRunner] = None,
                 user_name: str = "concrete-sync", user_email: str = "concrete-sync@localhost"):
        """
        Initializes the repository wrapper

        Args:
            clone_dir: Directory used for the working clone (wiped on open)
            runner: Git runner, a fresh GitRunner by default
            user_name: Commit identity used when git has none configured
            user_email: Commit identity used when git has none configured
        """
        self.clone_dir = Path(clone_dir)
        self.runner = runner or GitRunner()
        self.user_name = user_name
        self.user_email = user_email

    @classmethod
    def from_settings(cls, settings, verbose: bool = False) -> "SnapshotRepository":
        return cls(
            settings.clone_dir,
            runner=GitRunner(verbose=verbose),
            user_name=settings.git_user_name,
            user_email=settings.git_user_email,
        )

    def _git(self, clone: WorkingClone, *args: str, check: bool = True):
        return self.runner.run(list(args), cwd=clone.path, check=check)

    def open_working_clone(self, remote_url: str, branch: str) -> WorkingClone:
        """
        Creates a fresh working clone tracking the given branch

        If the branch exists on the remote it is checked out; otherwise an
        orphan branch with that name is prepared.

        Args:
            remote_url: URL of the snapshot repository
            branch: Branch carrying the snapshots

        Returns:
            WorkingClone: Handle on the new clone

        Raises:
            RemoteUnreachable: If the remote cannot be contacted at all
        """
        print(f"🔄 Preparing working clone of {remote_url} ({branch})...")

        remove_directory(self.clone_dir)
        ensure_dir_exists(self.clone_dir)

        clone = WorkingClone(self.clone_dir, remote_url, branch, has_remote_branch=False)
        try:
            self._git(clone, "init", "-q")
            self._git(clone, "remote", "add", REMOTE, remote_url)
            self._configure(clone)

            probe = self._git(clone, "ls-remote", "--heads", REMOTE, branch, check=False)
            if probe.returncode != 0:
                raise RemoteUnreachable(
                    f"Could not contact snapshot repository {remote_url}: {excerpt(probe.stderr)}",
                    remediation="Check FILES_GIT_REPO, your network connection and your access rights to the repository",
                )

            if f"refs/heads/{branch}" in probe.stdout.split():
                self._git(clone, "fetch", "-q", REMOTE, f"+refs/heads/{branch}:refs/remotes/{REMOTE}/{branch}")
                self._git(clone, "checkout", "-q", "-B", branch, f"{REMOTE}/{branch}")
                clone.has_remote_branch = True
                print(f"✅ Checked out branch '{branch}'")
            else:
                self._git(clone, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
                print(f"ℹ️ Branch '{branch}' does not exist yet, starting a new one")
        except BaseException:
            clone.cleanup()
            raise

        return clone

    def _configure(self, clone: WorkingClone):
        """
        Applies repo-local settings: commit identity and credential caching
        """
        if not self.runner.succeeds(["config", "--get", "user.email"], clone.path):
            self._git(clone, "config", "user.email", self.user_email)
        if not self.runner.succeeds(["config", "--get", "user.name"], clone.path):
            self._git(clone, "config", "user.name", self.user_name)

        # HTTPS remotes prompt once per run, then reuse the cached credentials
        if is_https_url(clone.remote_url) and not self.runner.succeeds(["config", "--get", "credential.helper"], clone.path):
            self._git(clone, "config", "credential.helper", "cache --timeout=3600")

    def head_commit(self, clone: WorkingClone) -> Optional[str]:
        result = self._git(clone, "rev-parse", "--verify", "-q", "HEAD", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def commit_all(self, clone: WorkingClone, message: str) -> CommitResult:
        """
        Stages every file in the clone and commits if anything changed

        Args:
            clone: Working clone
            message: Commit message

        Returns:
            CommitResult: changed=False (and no new commit) when the stage equals HEAD
        """
        self._git(clone, "add", "-A")

        diff = self._git(clone, "diff", "--cached", "--quiet", check=False)
        if diff.returncode not in (0, 1):
            raise GitCommandError(["diff", "--cached", "--quiet"], diff.returncode, diff.stderr)

        if diff.returncode == 0:
            print("ℹ️ No changes to commit")
            return CommitResult(changed=False, commit_id=self.head_commit(clone))

        self._git(clone, "commit", "-q", "-m", message)
        commit_id = self.head_commit(clone)
        print(f"✅ Committed snapshot {commit_id[:12] if commit_id else ''}")
        return CommitResult(changed=True, commit_id=commit_id)

    def push_branch(self, clone: WorkingClone, branch: str) -> PushResult:
        """
        Pushes HEAD to the branch, with one pull-and-retry on rejection

        Raises:
            PushConflict: If the retry fails too; the clone is retained
        """
        if self.head_commit(clone) is None:
            print("⚠️ Nothing has been committed, skipping push")
            return PushResult(pushed=False, attempts=0)

        print(f"📤 Pushing snapshot to {clone.remote_url} ({branch})...")
        refspec = f"HEAD:refs/heads/{branch}"

        first = self._git(clone, "push", REMOTE, refspec, check=False)
        if first.returncode == 0:
            print("✅ Snapshot pushed")
            return PushResult(pushed=True, attempts=1)

        print("⚠️ Push rejected, the remote has changed. Merging remote changes and retrying once...")
        pull = self._git(clone, "pull", "--no-edit", "--no-rebase", "--allow-unrelated-histories",
                         REMOTE, branch, check=False)
        if pull.returncode != 0:
            self._git(clone, "merge", "--abort", check=False)
            clone.retain()
            raise PushConflict(
                f"Could not merge remote changes on '{branch}': {excerpt(pull.stderr)}",
                clone_path=str(clone.path),
                remediation=f"Inspect the working clone at {clone.path}, resolve the conflict and push manually",
            )

        second = self._git(clone, "push", REMOTE, refspec, check=False)
        if second.returncode != 0:
            clone.retain()
            raise PushConflict(
                f"Push to '{branch}' was rejected again: {excerpt(second.stderr)}",
                clone_path=str(clone.path),
                remediation=f"Another environment is pushing at the same time. Inspect {clone.path} and retry",
            )

        print("✅ Snapshot pushed after merging remote changes")
        return PushResult(pushed=True, attempts=2)

    def list_tags(self, clone: WorkingClone) -> List[str]:
        """
        Lists remote tags, newest first

        Falls back to asking the remote directly when the bulk fetch yields
        nothing.
        """
        fetch = self._git(clone, "fetch", "-q", "--force", REMOTE, "+refs/tags/*:refs/tags/*", check=False)
        if fetch.returncode != 0:
            print(f"⚠️ Could not fetch tags: {excerpt(fetch.stderr)}")

        tags = self._git(clone, "tag", "-l", check=False).stdout.split()

        if not tags:
            remote = self._git(clone, "ls-remote", "--tags", REMOTE, check=False)
            if remote.returncode != 0:
                print(f"⚠️ Could not list remote tags: {excerpt(remote.stderr)}")
                return []
            tags = _parse_ls_remote_tags(remote.stdout)

        return sort_tags(tags)

    def create_and_push_tag(self, clone: WorkingClone, name: str) -> bool:
        """
        Force-creates a tag at HEAD and force-pushes it

        A failure is only a warning: the branch push already succeeded.

        Returns:
            bool: True if the tag reached the remote
        """
        created = self._git(clone, "tag", "-f", name, check=False)
        if created.returncode != 0:
            print(f"⚠️ Could not create tag {name}: {excerpt(created.stderr)}")
            return False

        pushed = self._git(clone, "push", "--force", REMOTE, f"refs/tags/{name}", check=False)
        if pushed.returncode != 0:
            print(f"⚠️ Could not push tag {name}: {excerpt(pushed.stderr)}")
            return False

        print(f"🏷️ Created snapshot tag: {name}")
        return True

    def checkout_ref(self, clone: WorkingClone, ref: str) -> str:
        """
        Checks out the branch head (latest) or a tag

        Args:
            clone: Working clone
            ref: "latest" or a tag name

        Returns:
            str: The checked out commit id

        Raises:
            RefNotFound: If the branch or tag does not exist
        """
        if ref == LATEST:
            branch = clone.branch
            self._git(clone, "fetch", "-q", REMOTE, f"+refs/heads/{branch}:refs/remotes/{REMOTE}/{branch}",
                      check=False)
            if not self.runner.succeeds(["rev-parse", "--verify", "-q", f"refs/remotes/{REMOTE}/{branch}"], clone.path):
                raise RefNotFound(
                    f"Branch '{branch}' has no snapshots yet",
                    remediation="Run 'concrete-sync push' on the source environment first",
                )
            self._git(clone, "checkout", "-q", "-f", "-B", branch, f"{REMOTE}/{branch}")
            print(f"ℹ️ Using latest snapshot from branch: {branch}")
        else:
            if not ref or ref.startswith("-"):
                raise RefNotFound(f"Invalid tag name: {ref!r}")

            tag_ref = f"refs/tags/{ref}"
            if not self.runner.succeeds(["rev-parse", "--verify", "-q", tag_ref], clone.path):
                self._git(clone, "fetch", "-q", "--force", REMOTE, "+refs/tags/*:refs/tags/*", check=False)
            if not self.runner.succeeds(["rev-parse", "--verify", "-q", tag_ref], clone.path):
                raise RefNotFound(
                    f"Tag not found: {ref}",
                    remediation="Run 'concrete-sync tags' to list the available snapshots",
                )
            self._git(clone, "checkout", "-q", "-f", "--detach", tag_ref)
            print(f"ℹ️ Using snapshot tag: {ref}")

        return self.head_commit(clone) or ""


def _parse_ls_remote_tags(output: str) -> List[str]:
    tags = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) != 2 or not parts[1].startswith("refs/tags/"):
            continue
        name = parts[1][len("refs/tags/"):]
        if name.endswith("^{}"):
            continue
        tags.append(name)
    return tags
