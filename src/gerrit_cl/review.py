"""
Mailing a changelist branch to Gerrit.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .chain_manager import ChainManager
from .gerrit import GerritClient, reference
from .git_manager import GitManager
from .metadata_store import BranchMetadataStore
from .models import (
    NoChangeIDError,
    ReviewFromUpstreamError,
    ReviewOptions,
    UncommittedChangesError,
    WorkingDirectoryError,
)
from .prompt_interface import NoOpPrompt, UserPrompt
from .review_builder import ReviewBranchBuilder
from .trailers import CommitMessage, process_labels
from .workspace import Workspace


logger = logging.getLogger(__name__)


@dataclass
class ReviewResult:
    """Outcome of a review submission."""

    branch: str
    reference: str
    change_id: Optional[str] = None
    remote_lines: List[str] = field(default_factory=list)
    dry_run: bool = False
    topic_set: bool = False


class Review:
    """Submits one changelist branch, with its ancestors, for review."""

    def __init__(
        self,
        git_manager: GitManager,
        options: ReviewOptions,
        store: Optional[BranchMetadataStore] = None,
        prompt: Optional[UserPrompt] = None,
        gerrit: Optional[GerritClient] = None,
    ) -> None:
        self.git_manager = git_manager
        self.options = options
        self.store = store or BranchMetadataStore(git_manager.git_dir())
        self.prompt = prompt or NoOpPrompt()
        self.chain_manager = ChainManager(
            git_manager, self.store, remote=options.remote, remote_branch=options.remote_branch
        )
        self.builder = ReviewBranchBuilder(git_manager, self.store, self.prompt)
        self.gerrit = gerrit or GerritClient(git_manager, options.host)
        self.workspace = Workspace(git_manager)

    @property
    def branch(self) -> str:
        return self.options.branch

    # --- Pre-submission checks ---
    def check_preconditions(self) -> None:
        """Refuse to touch any branch with uncommitted changes or from upstream."""
        if self.options.check_uncommitted:
            files = self.git_manager.files_with_uncommitted_changes()
            if files:
                raise UncommittedChangesError(files)
        if self.branch == self.options.remote_branch:
            raise ReviewFromUpstreamError(self.options.remote_branch)

    def check_working_directory(self) -> None:
        """The current directory must exist on the upstream branch."""
        relative = os.path.relpath(Path.cwd().resolve(), self.git_manager.top_level())
        if not self.git_manager.dir_exists_on_branch(relative, self.options.remote_branch):
            raise WorkingDirectoryError(relative, self.options.remote_branch)

    def prepare(self) -> List[str]:
        """Sync the chain and make sure every ancestor has been mailed.

        Returns the chain of the branch, upstream first.
        """
        self.check_preconditions()
        self.check_working_directory()
        self.chain_manager.sync()
        self.chain_manager.check_dependents(self.branch)
        return self.chain_manager.resolve_chain(self.branch)

    def label_changes(self) -> List[str]:
        """Describe how the requested labels differ from the last review."""
        message = self.store.read_commit_message(self.branch)
        if message is None:
            return []
        previous = CommitMessage.parse(message)
        changes = []
        if previous.presubmit != self.options.presubmit.value:
            changes.append(f"presubmit={previous.presubmit} to presubmit={self.options.presubmit.value}")
        if previous.autosubmit != self.options.autosubmit:
            changes.append(
                f"autosubmit={str(previous.autosubmit).lower()} to autosubmit={str(self.options.autosubmit).lower()}"
            )
        return changes

    def confirm_flag_changes(self, prompt: Optional[UserPrompt] = None) -> bool:
        """Ask before changing labels of an already-mailed review."""
        changes = self.label_changes()
        if not changes:
            return True
        return (prompt or self.prompt).confirm_label_changes(self.branch, changes)

    # --- Submission ---
    def run(self) -> ReviewResult:
        """Build the review branch, record its message and push it.

        The original branch, the stash and the working directory are
        restored, and the review branch deleted, however this exits.
        """
        self.check_preconditions()
        result = ReviewResult(
            branch=self.branch, reference=reference(self.options), dry_run=self.options.dry_run
        )
        with self.workspace.preserved():
            with self.workspace.ephemeral_branch(self.options.review_branch, return_to=self.branch):
                message = self.options.message or self.store.read_commit_message(self.branch) or ""
                if message:
                    message = process_labels(message, self.options)
                chain = self.chain_manager.resolve_chain(self.branch)
                self.builder.build(self.options, chain, message)
                final_message = self.update_review_message()
                result.change_id = CommitMessage.parse(final_message).change_id
                result.remote_lines = self.send()
                if self.options.set_topic:
                    self.set_topic()
                    result.topic_set = True
        return result

    def update_review_message(self) -> str:
        """Record the review message, adding labels on the first submission."""
        self.git_manager.checkout_branch(self.options.review_branch)
        message = self.git_manager.latest_commit_message()
        if not self.store.has_commit_message(self.branch):
            message = process_labels(message, self.options)
            dates = self.git_manager.last_commit_dates(self.branch)
            self.git_manager.commit_amend(message, dates=dates)
        if self.options.dry_run:
            logger.info(f"Dry run: not recording the review message of {self.branch}")
        else:
            self.store.write_commit_message(self.branch, message)
        return message

    def send(self) -> List[str]:
        """Push the review branch; return the server's "remote:" lines."""
        if self.options.dry_run:
            logger.info(f"Dry run: not pushing HEAD:{reference(self.options)} to {self.options.push_remote}")
            return []
        if CommitMessage.parse(self.git_manager.latest_commit_message()).change_id is None:
            raise NoChangeIDError(self.branch)
        return self.gerrit.push(self.options)

    def set_topic(self) -> None:
        if self.options.dry_run:
            logger.info(f"Dry run: not setting topic {self.options.topic}")
            return
        message = self.store.read_commit_message(self.branch) or ""
        change_id = CommitMessage.parse(message).change_id
        if change_id is None:
            raise NoChangeIDError(self.branch)
        self.gerrit.set_topic(change_id, self.options)
