"""
Tests for the workspace guards.
"""

import os
from pathlib import Path
from unittest.mock import Mock, call

import pytest

from gerrit_cl.git_manager import GitManager
from gerrit_cl.models import GitRepositoryError
from gerrit_cl.workspace import Workspace, run_cleanup


class TestRunCleanup:
    """Every step runs; errors surface only when nothing else failed."""

    def test_all_steps_run(self):
        ran = []

        def broken():
            ran.append("broken")
            raise GitRepositoryError("checkout failed")

        with pytest.raises(GitRepositoryError):
            run_cleanup([("first", broken), ("second", lambda: ran.append("second"))], failed=False)

        assert ran == ["broken", "second"]

    def test_first_error_is_raised(self):
        def fail(message):
            def step():
                raise GitRepositoryError(message)
            return step

        with pytest.raises(GitRepositoryError, match="one"):
            run_cleanup([("a", fail("one")), ("b", fail("two"))], failed=False)

    def test_errors_are_logged_while_unwinding(self, caplog):
        def broken():
            raise GitRepositoryError("stash pop failed")

        run_cleanup([("stash pop", broken)], failed=True)

        assert "stash pop failed" in caplog.text


@pytest.fixture
def git_manager(tmp_path):
    manager = Mock(spec=GitManager)
    manager.get_current_branch.return_value = "feature"
    manager.top_level.return_value = tmp_path
    manager.stash.return_value = True
    return manager


@pytest.fixture
def subdir(tmp_path, monkeypatch):
    path = tmp_path / "sub"
    path.mkdir()
    monkeypatch.chdir(path)
    return path


class TestPreserved:
    """Branch, stash and directory are restored on every exit path."""

    def test_success(self, git_manager, subdir, tmp_path):
        with Workspace(git_manager).preserved() as state:
            assert Path.cwd() == tmp_path
            assert state.stashed

        assert git_manager.mock_calls[-2:] == [call.checkout_branch("feature", force=False), call.stash_pop()]
        assert Path.cwd() == subdir

    def test_failure_forces_checkout(self, git_manager, subdir):
        with pytest.raises(RuntimeError, match="boom"):
            with Workspace(git_manager).preserved():
                raise RuntimeError("boom")

        git_manager.checkout_branch.assert_called_once_with("feature", force=True)
        git_manager.stash_pop.assert_called_once()
        assert Path.cwd() == subdir

    def test_cleanup_error_does_not_mask_failure(self, git_manager, subdir):
        git_manager.stash_pop.side_effect = GitRepositoryError("conflict while popping")

        with pytest.raises(RuntimeError, match="boom"):
            with Workspace(git_manager).preserved():
                raise RuntimeError("boom")

        assert Path.cwd() == subdir

    def test_cleanup_error_surfaces_after_success(self, git_manager, subdir):
        git_manager.stash_pop.side_effect = GitRepositoryError("conflict while popping")

        with pytest.raises(GitRepositoryError):
            with Workspace(git_manager).preserved():
                pass

        assert Path.cwd() == subdir

    def test_nothing_stashed_means_no_pop(self, git_manager, subdir):
        git_manager.stash.return_value = False
        with Workspace(git_manager).preserved():
            pass
        git_manager.stash_pop.assert_not_called()

    def test_deleted_branch_is_not_restored(self, git_manager, subdir):
        with Workspace(git_manager).preserved() as state:
            state.restore_branch = False
        git_manager.checkout_branch.assert_not_called()

    def test_keyboard_interrupt_restores(self, git_manager, subdir):
        with pytest.raises(KeyboardInterrupt):
            with Workspace(git_manager).preserved():
                raise KeyboardInterrupt()
        git_manager.checkout_branch.assert_called_once_with("feature", force=True)
        assert os.getcwd() == str(subdir)


class TestEphemeralBranch:
    """The review branch never outlives a command."""

    def test_deleted_on_success(self, git_manager):
        git_manager.branch_exists.return_value = True
        with Workspace(git_manager).ephemeral_branch("feature-REVIEW", return_to="feature"):
            pass
        git_manager.checkout_branch.assert_called_once_with("feature", force=False)
        git_manager.delete_branch.assert_called_once_with("feature-REVIEW", force=True)

    def test_deleted_on_failure(self, git_manager):
        git_manager.branch_exists.return_value = True
        with pytest.raises(ValueError):
            with Workspace(git_manager).ephemeral_branch("feature-REVIEW", return_to="feature"):
                raise ValueError()
        git_manager.checkout_branch.assert_called_once_with("feature", force=True)
        git_manager.delete_branch.assert_called_once_with("feature-REVIEW", force=True)

    def test_missing_branch_is_skipped(self, git_manager):
        git_manager.branch_exists.return_value = False
        with Workspace(git_manager).ephemeral_branch("feature-REVIEW", return_to="feature"):
            pass
        git_manager.delete_branch.assert_not_called()
