"""Thin git client over the git command line."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from affected_tests.errors import AffectedTestsError

logger = logging.getLogger(__name__)

STASH_TOP = "stash@{0}"


class GitError(AffectedTestsError):
    pass


def run_git(repo_root: Path, args: list[str], timeout: float = 60) -> str:
    try:
        result = subprocess.run(
            ["git", "-C", str(repo_root), *args],
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            check=True,
            timeout=timeout,
        )
        return result.stdout
    except subprocess.CalledProcessError as e:
        raise GitError(f"git {' '.join(args)} failed: {e.stderr.strip()}") from e
    except subprocess.TimeoutExpired as e:
        raise GitError(f"git {' '.join(args)} timed out after {timeout} seconds") from e
    except FileNotFoundError as e:
        raise GitError("git is not installed or not in PATH") from e


def base_ref(depth: int) -> str:
    """Revision the working tree is compared against for a history depth.

    Depth 1 means the uncommitted changes only (``HEAD``); each further
    step adds one more commit (``HEAD~1``, ``HEAD~2``, ...).
    """
    if depth < 1:
        raise ValueError(f"depth must be a positive integer, got {depth}")
    return "HEAD" if depth == 1 else f"HEAD~{depth - 1}"


class GitClient:
    """Git operations used by the impact engine and the snapshot coordinator."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = repo_root

    def is_repo(self) -> bool:
        try:
            run_git(self.repo_root, ["rev-parse", "--git-dir"])
            return True
        except GitError:
            return False

    def changed_files(self, base: str) -> list[str]:
        """Files differing between ``base`` and the working tree, plus untracked files."""
        output = run_git(self.repo_root, ["diff", "--name-only", base])
        files = {line.strip() for line in output.splitlines() if line.strip()}
        untracked = run_git(self.repo_root, ["ls-files", "--others", "--exclude-standard"])
        files.update(line.strip() for line in untracked.splitlines() if line.strip())
        return sorted(files)

    def show_file(self, rev: str, rel_path: str) -> str | None:
        """Content of ``rel_path`` at ``rev``, or None if it does not exist there."""
        try:
            return run_git(self.repo_root, ["show", f"{rev}:{rel_path}"])
        except GitError as e:
            logger.debug(f"{rel_path} not available at {rev}: {e}")
            return None

    def stash_top(self) -> str | None:
        """Commit id of the top stash entry, or None if the stash is empty."""
        try:
            output = run_git(self.repo_root, ["rev-parse", "--verify", "--quiet", "refs/stash"])
        except GitError:
            return None
        return output.strip() or None

    def stash_push(self, message: str) -> None:
        run_git(self.repo_root, ["stash", "push", "--include-untracked", "-m", message])

    def stash_apply(self, ref: str = STASH_TOP) -> None:
        run_git(self.repo_root, ["stash", "apply", ref])
