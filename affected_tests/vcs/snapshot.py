"""Head-state bracket around the phase-1 test run.

Sets the uncommitted changes aside before phase 1 and applies them back
afterwards. Both operations mutate the shared working tree and are only
invoked from the foreground context.
"""

from __future__ import annotations

import logging

from affected_tests.vcs.git import STASH_TOP, GitClient, GitError

logger = logging.getLogger(__name__)

STASH_MESSAGE = "affected-tests: working changes set aside for head-state run"


class SnapshotCoordinator:
    """Stashes and restores working-tree changes for the head-state run."""

    def __init__(self, git: GitClient, notifier) -> None:
        self.git = git
        self.notifier = notifier

    def stash_current_changes(self) -> bool:
        """Stash uncommitted (including untracked) changes.

        Returns:
            True if a new stash entry was created, False when there was
            nothing to stash.

        Raises:
            GitError: If git refuses to stash.
        """
        before = self.git.stash_top()
        self.git.stash_push(STASH_MESSAGE)
        after = self.git.stash_top()
        created = after is not None and after != before
        if created:
            logger.info(f"Stashed working changes as {after}")
        else:
            logger.info("No local changes to stash")
        return created

    def restore_stashed_changes(self, should_restore: bool) -> bool:
        """Apply the top stash entry back onto the working tree.

        The entry is applied, not popped, so it stays on the stash stack.
        A failure is reported and the session carries on.

        Args:
            should_restore: False when nothing was stashed (no-op).

        Returns:
            True if the changes were applied.
        """
        if not should_restore:
            return False
        try:
            self.git.stash_apply(STASH_TOP)
        except GitError as e:
            logger.error(f"Applying {STASH_TOP} failed: {e}")
            self.notifier.error(
                "Restore Error",
                f"Could not apply {STASH_TOP}: {e}\n"
                f"Your changes are still in the stash; run 'git stash apply' to recover them.",
            )
            return False
        logger.info(f"Applied {STASH_TOP} back onto the working tree")
        return True
