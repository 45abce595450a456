"""Version control: git client and the stash/restore snapshot bracket."""

from affected_tests.vcs.git import GitClient, GitError, base_ref, run_git
from affected_tests.vcs.snapshot import SnapshotCoordinator

__all__ = [
    "GitClient",
    "GitError",
    "SnapshotCoordinator",
    "base_ref",
    "run_git",
]
