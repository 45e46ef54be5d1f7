"""
Guards that put the working tree back the way the user left it.

Every command that switches branches runs inside `Workspace.preserved()`:
local changes are stashed, the process moves to the top of the working tree,
and on the way out the original branch is checked out again, the stash is
popped and the original directory restored. A failed release step never
hides the error that caused the unwind; it is logged instead.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

from .git_manager import GitManager


logger = logging.getLogger(__name__)


@dataclass
class WorkspaceState:
    """What `Workspace.preserved()` will restore on exit."""

    original_branch: str
    original_cwd: Path
    stashed: bool = False
    restore_branch: bool = True


class Workspace:
    """Stash / branch / directory bookkeeping around multi-step git operations."""

    def __init__(self, git_manager: GitManager) -> None:
        self.git_manager = git_manager

    @contextmanager
    def preserved(self) -> Iterator[WorkspaceState]:
        """Stash local changes and restore branch, stash and cwd on exit.

        On failure the original branch is checked out with --force. Callers
        that delete the original branch clear `restore_branch` on the
        yielded state.
        """
        state = WorkspaceState(
            original_branch=self.git_manager.get_current_branch(),
            original_cwd=Path.cwd(),
        )
        state.stashed = self.git_manager.stash()
        try:
            os.chdir(self.git_manager.top_level())
            yield state
        except BaseException:
            self._release(state, failed=True)
            raise
        self._release(state, failed=False)

    def _release(self, state: WorkspaceState, failed: bool) -> None:
        steps: List[Tuple[str, Callable[[], None]]] = []
        if state.restore_branch:
            steps.append(
                (
                    f"checkout {state.original_branch}",
                    lambda: self.git_manager.checkout_branch(state.original_branch, force=failed),
                )
            )
        if state.stashed:
            steps.append(("stash pop", self.git_manager.stash_pop))
        steps.append(("restore working directory", lambda: os.chdir(state.original_cwd)))
        run_cleanup(steps, failed)

    @contextmanager
    def ephemeral_branch(self, name: str, return_to: str) -> Iterator[str]:
        """Delete branch `name` on exit after switching back to `return_to`."""
        try:
            yield name
        except BaseException:
            self.discard_branch(name, return_to, failed=True)
            raise
        self.discard_branch(name, return_to, failed=False)

    def discard_branch(self, name: str, return_to: str, failed: bool) -> None:
        """Check out `return_to` and delete `name` if it exists."""

        def delete() -> None:
            if self.git_manager.branch_exists(name):
                self.git_manager.delete_branch(name, force=True)

        run_cleanup(
            [
                (f"checkout {return_to}", lambda: self.git_manager.checkout_branch(return_to, force=failed)),
                (f"delete {name}", delete),
            ],
            failed,
        )


def run_cleanup(steps: List[Tuple[str, Callable[[], None]]], failed: bool) -> None:
    """Run every cleanup step even if earlier ones fail.

    While another error is propagating (`failed`), step errors are only
    logged. Otherwise the first step error is raised after all steps ran.
    """
    first_error: Optional[Exception] = None
    for description, step in steps:
        try:
            step()
        except Exception as e:
            logger.error(f"Cleanup step '{description}' failed: {e}")
            if first_error is None:
                first_error = e
    if first_error is not None and not failed:
        raise first_error
