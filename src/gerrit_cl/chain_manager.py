"""
Dependency chains of changelist branches.

A chain lists a branch's ancestors, upstream first, e.g. for `feature2`
created from `feature1`, which was created from `master`:

    ["master", "feature1"]
"""

from __future__ import annotations

import logging
from typing import List

from .git_manager import GitManager
from .metadata_store import BranchMetadataStore
from .models import (
    ChainStatus,
    GitRepositoryError,
    MergeError,
    SyncConflictError,
    UnexportedAncestorError,
    UnmergedChangesError,
    review_branch_name,
)
from .workspace import Workspace


logger = logging.getLogger(__name__)


class ChainManager:
    """Creates, synchronizes and removes dependent changelist branches."""

    def __init__(
        self,
        git_manager: GitManager,
        store: BranchMetadataStore,
        remote: str = "origin",
        remote_branch: str = "master",
    ) -> None:
        self.git_manager = git_manager
        self.store = store
        self.remote = remote
        self.remote_branch = remote_branch
        self.workspace = Workspace(git_manager)

    def resolve_chain(self, branch: str) -> List[str]:
        """Return the ancestors of `branch`, upstream first.

        A branch without a dependency record is a direct child of the
        upstream branch; the upstream branch itself has no ancestors.
        """
        ancestors = self.store.read_dependencies(branch)
        if ancestors is not None:
            return ancestors
        if branch == self.remote_branch:
            return []
        return [self.remote_branch]

    def chain_status(self, branch: str) -> ChainStatus:
        ancestors = self.resolve_chain(branch)
        return ChainStatus(
            branch=branch,
            upstream=ancestors[0] if ancestors else None,
            ancestors=ancestors,
            exported=[b for b in ancestors[1:] + [branch] if self.store.has_commit_message(b)],
        )

    def new_cl(self, name: str) -> None:
        """Create branch `name` from the current branch and record its chain."""
        original = self.git_manager.get_current_branch()
        ancestors = self.resolve_chain(original) + [original]
        self.git_manager.create_and_checkout_branch(name)
        try:
            self.store.write_dependencies(name, ancestors)
        except Exception:
            logger.error(f"Recording dependencies of {name} failed; removing the branch")
            self.workspace.discard_branch(name, original, failed=True)
            raise
        logger.info(f"Created changelist {name} depending on {' -> '.join(ancestors)}")

    def sync(self) -> List[str]:
        """Bring every branch of the current chain up to date with its parent.

        The upstream branch is merged with its remote copy, then each branch is
        merged into its child, ancestors first. Returns the synced chain.
        """
        with self.workspace.preserved() as state:
            branch = state.original_branch
            chain = self.resolve_chain(branch) + [branch]
            logger.info(f"Syncing chain {' -> '.join(chain)}")
            self.git_manager.checkout_branch(chain[0])
            if self.git_manager.has_remote(self.remote):
                remote_ref = f"{self.remote}/{chain[0]}"
                self.git_manager.fetch(self.remote, chain[0])
                try:
                    self.git_manager.merge(remote_ref)
                except MergeError as e:
                    raise SyncConflictError(
                        ancestor=remote_ref,
                        descendant=chain[0],
                        original_branch=branch,
                        detail=e.detail,
                    ) from e
            else:
                logger.warning(f"Remote {self.remote} is not configured; not pulling {chain[0]}")
            for ancestor, descendant in zip(chain, chain[1:]):
                self.git_manager.checkout_branch(descendant)
                try:
                    self.git_manager.merge(ancestor)
                except MergeError as e:
                    raise SyncConflictError(
                        ancestor=ancestor,
                        descendant=descendant,
                        original_branch=branch,
                        detail=e.detail,
                    ) from e
        return chain

    def check_dependents(self, branch: str) -> None:
        """Require every non-upstream ancestor of `branch` to be mailed already."""
        for ancestor in self.resolve_chain(branch)[1:]:
            if not self.store.has_commit_message(ancestor):
                raise UnexportedAncestorError(branch, ancestor)

    def cleanup(self, branches: List[str], force: bool = False) -> None:
        """Delete branches whose changes have been merged upstream.

        Unless `force` is set, each branch is merged with the fetched
        upstream first and must not differ from it afterwards.
        """
        for branch in branches:
            if not self.git_manager.branch_exists(branch):
                raise GitRepositoryError(f"Branch {branch} does not exist")
        with self.workspace.preserved() as state:
            self.git_manager.checkout_branch(self.remote_branch)
            self.git_manager.fetch(self.remote, self.remote_branch)
            for branch in branches:
                self._cleanup_branch(branch, force)
                if branch == state.original_branch:
                    state.restore_branch = False

    def _cleanup_branch(self, branch: str, force: bool) -> None:
        remote_ref = f"{self.remote}/{self.remote_branch}"
        self.git_manager.checkout_branch(branch)
        if not force:
            self.git_manager.merge(remote_ref)
            files = self.git_manager.modified_files(remote_ref, branch)
            if files:
                raise UnmergedChangesError(branch, self.remote_branch, files)
        self.git_manager.checkout_branch(self.remote_branch)
        self.git_manager.delete_branch(branch, force=True)
        review_branch = review_branch_name(branch)
        if self.git_manager.branch_exists(review_branch):
            self.git_manager.delete_branch(review_branch, force=True)
        self.store.remove_branch(branch)
        logger.info(f"Cleaned up {branch}")
