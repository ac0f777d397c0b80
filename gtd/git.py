"""Git operations for the workflow."""

from __future__ import annotations

import subprocess
from pathlib import Path

from gtd.errors import GitOperationError


class GitManager:
    """
    Thin wrapper around the git CLI for a single repository.

    Read helpers used for state probing return empty values on failure
    (a fresh repository has no ``HEAD``). Write helpers raise
    GitOperationError.
    """

    def __init__(self, repo_path: Path):
        self.repo_path = repo_path
        self._validate_repo()

    def _validate_repo(self) -> None:
        """Validate that the path is a git repository or worktree."""
        git_dir = self.repo_path / ".git"
        # .git can be a directory (regular repo) or a file (worktree)
        if not git_dir.exists():
            raise GitOperationError("validate", f"Not a git repository: {self.repo_path}")

    @property
    def git_dir(self) -> Path:
        """Directory holding git metadata, resolved for worktrees."""
        result = self._run(["rev-parse", "--git-dir"], check=False)
        if result.returncode == 0 and result.stdout.strip():
            path = Path(result.stdout.strip())
            return path if path.is_absolute() else self.repo_path / path
        return self.repo_path / ".git"

    def _run(
        self,
        args: list[str],
        check: bool = True,
        input: str | None = None,
    ) -> subprocess.CompletedProcess:
        """Run a git command."""
        cmd = ["git"] + args

        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                input=input,
                capture_output=True,
                text=True,
                # Non-UTF-8 bytes survive a read and re-apply unchanged
                encoding="utf-8",
                errors="surrogateescape",
                timeout=120,
            )
            if check and result.returncode != 0:
                raise GitOperationError(
                    " ".join(args[:2]),
                    result.stderr or result.stdout,
                    result.returncode,
                )
            return result
        except subprocess.TimeoutExpired as e:
            raise GitOperationError(" ".join(args[:2]), "Command timed out") from e

    # -- queries -------------------------------------------------------------

    def has_uncommitted_changes(self) -> bool:
        """True if ``status --porcelain`` reports anything."""
        result = self._run(["status", "--porcelain"])
        return result.stdout.strip() != ""

    def has_head(self) -> bool:
        result = self._run(["rev-parse", "--verify", "--quiet", "HEAD"], check=False)
        return result.returncode == 0

    def get_last_commit_message(self) -> str:
        """Subject of ``HEAD``, or "" when there are no commits."""
        result = self._run(["log", "-1", "--pretty=%s"], check=False)
        if result.returncode != 0:
            return ""
        return result.stdout.strip()

    def get_recent_commit_messages(self, count: int) -> list[str]:
        """Subjects of the last ``count`` commits, newest first."""
        result = self._run(["log", f"-{count}", "--pretty=%s"], check=False)
        if result.returncode != 0:
            return []
        return [line for line in result.stdout.split("\n") if line.strip()]

    def show(self, ref: str) -> str:
        """``git show <ref>``, or "" if the ref does not resolve."""
        result = self._run(["show", ref], check=False)
        if result.returncode != 0:
            return ""
        return result.stdout

    def show_commit_diff(self, ref: str = "HEAD") -> str:
        """Patch of a single commit without the commit header."""
        result = self._run(["show", "--format=", ref], check=False)
        if result.returncode != 0:
            return ""
        return result.stdout

    def file_exists_at(self, ref: str, path: str) -> bool:
        result = self._run(["cat-file", "-e", f"{ref}:{path}"], check=False)
        return result.returncode == 0

    def list_untracked_files(self) -> list[str]:
        result = self._run(["ls-files", "--others", "--exclude-standard"])
        return [f for f in result.stdout.split("\n") if f]

    # -- diffs ---------------------------------------------------------------

    def get_diff(self) -> str:
        """Unstaged diff, falling back to the last commit's diff when clean."""
        result = self._run(["diff"])
        if result.stdout.strip():
            return result.stdout
        fallback = self._run(["diff", "HEAD~1"], check=False)
        return fallback.stdout if fallback.returncode == 0 else ""

    def get_working_diff(self) -> str:
        """
        Diff of every working tree change against ``HEAD``, untracked files included.

        Untracked files are marked intent-to-add for the duration of the
        read and unmarked again afterwards, so their status is unchanged.
        """
        untracked = self.list_untracked_files()
        if untracked:
            self._run(["add", "--intent-to-add", "--"] + untracked)
        try:
            if self.has_head():
                return self._run(["diff", "HEAD"]).stdout
            return self._run(["diff"]).stdout
        finally:
            if untracked:
                self._run(["reset", "-q", "--"] + untracked, check=False)

    # -- writing -------------------------------------------------------------

    def add(self, files: list[str]) -> None:
        """Stage files for commit."""
        if files:
            self._run(["add", "--"] + files)

    def add_all(self) -> None:
        self._run(["add", "-A"])

    def reset_index(self) -> None:
        """Unstage everything, leaving the working tree alone."""
        if self.has_head():
            self._run(["reset", "-q", "HEAD"], check=False)
        else:
            self._run(["rm", "-r", "-q", "--cached", "."], check=False)

    def stage_by_patch(self, patch: str) -> None:
        """Stage a patch without touching the working tree."""
        self._run(["apply", "--cached"], input=patch)

    def commit(self, message: str) -> str:
        """Create a commit and return the commit hash."""
        self._run(["commit", "-m", message])
        hash_result = self._run(["rev-parse", "HEAD"])
        return hash_result.stdout.strip()

    def empty_commit(self, message: str) -> str:
        """Commit with no changes, used to advance the workflow state."""
        self._run(["commit", "--allow-empty", "-m", message])
        hash_result = self._run(["rev-parse", "HEAD"])
        return hash_result.stdout.strip()

    def commit_staged(self, message: str) -> str:
        """Commit the current index, resetting it if the commit fails."""
        try:
            return self.commit(message)
        except GitOperationError:
            self.reset_index()
            raise

    def atomic_commit(self, files: list[str] | str, message: str) -> str:
        """
        Stage ``files`` (or everything with ``"all"``) and commit.

        A failed commit never leaves a half-staged index behind.
        """
        if files == "all":
            self.add_all()
        else:
            self.add(list(files))
        return self.commit_staged(message)
