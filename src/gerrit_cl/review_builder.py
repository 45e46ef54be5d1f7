"""
Construction of the ephemeral review branch.

The review branch starts at the fetched upstream and receives one commit per
branch of the chain. Each commit's tree is exactly the tree of the branch it
represents, and its timestamps are copied from that branch's tip, so building
the same chain twice produces the same commits.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .git_manager import GitManager
from .metadata_store import BranchMetadataStore
from .models import (
    ChangeConflictError,
    ConfigurationError,
    EmptyChangeError,
    MergeError,
    ReviewOptions,
)
from .prompt_interface import NoOpPrompt, UserPrompt
from .trailers import default_message, strip_comment_lines
from .workspace import Workspace


logger = logging.getLogger(__name__)


class ReviewBranchBuilder:
    """Squashes a dependency chain onto a fresh review branch."""

    def __init__(
        self,
        git_manager: GitManager,
        store: BranchMetadataStore,
        prompt: Optional[UserPrompt] = None,
    ) -> None:
        self.git_manager = git_manager
        self.store = store
        self.prompt = prompt or NoOpPrompt()
        self.workspace = Workspace(git_manager)

    def build(self, options: ReviewOptions, chain: List[str], message: str) -> str:
        """Create `<branch>-REVIEW` for `options.branch` and return its name.

        `chain` holds the ancestors of the branch, upstream first. On success
        the review branch is left checked out; on failure the branch is
        checked out again and the review branch deleted.
        """
        branch = options.branch
        review_branch = options.review_branch
        upstream = f"{options.remote}/{options.remote_branch}"

        self.git_manager.fetch(options.remote, options.remote_branch)
        if self.git_manager.branch_exists(review_branch):
            logger.info(f"Deleting stale review branch {review_branch}")
            self.git_manager.delete_branch(review_branch, force=True)
        self.git_manager.create_branch_with_upstream(review_branch, upstream)
        try:
            self.git_manager.checkout_branch(review_branch)
            if not options.dry_run and not self.git_manager.branches_differ(branch, review_branch):
                raise EmptyChangeError(branch, options.remote_branch)
            template = not message
            if template:
                message = default_message(self.git_manager.commit_messages(branch, review_branch))
            self.squash_branches(chain[1:] + [branch], message, options, template=template)
        except BaseException:
            self.workspace.discard_branch(review_branch, branch, failed=True)
            raise
        logger.info(f"Built review branch {review_branch}")
        return review_branch

    def squash_branches(
        self, branches: List[str], message: str, options: ReviewOptions, template: bool = False
    ) -> None:
        """Add one commit per branch, in order, to the checked-out review branch.

        Every branch but the last is committed with its recorded review
        message; the last one with `message`.
        """
        for position, branch in enumerate(branches):
            try:
                self.git_manager.merge(branch, squash=True, strategy="ours")
            except MergeError as e:
                raise ChangeConflictError(branch, options.remote_branch, e.detail, remote=options.remote) from e
            self.git_manager.overlay_tree(branch)
            dates = self.git_manager.last_commit_dates(branch)
            if position == len(branches) - 1:
                commit_message = self._final_message(branch, message, options, template)
            else:
                commit_message = self.store.read_commit_message(branch) or ""
            self.git_manager.commit(commit_message, dates=dates)
            logger.debug(f"Squashed {branch} onto the review branch")

    def _final_message(self, branch: str, message: str, options: ReviewOptions, template: bool) -> str:
        if options.edit:
            message = self.prompt.edit_commit_message(branch, message)
        if options.edit or template:
            message = strip_comment_lines(message)
        if not message.strip():
            raise ConfigurationError("Aborting review: the commit message is empty")
        return message
