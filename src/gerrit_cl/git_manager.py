"""
Git repository management and operations.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple
from git import Repo, InvalidGitRepositoryError
from git.exc import GitCommandError

from .models import CommitDates, GitRepositoryError, MergeError, PushError


logger = logging.getLogger(__name__)


class GitManager:
    """Manages Git operations for the repository holding the changelists."""

    def __init__(self, repo_path: Optional[Path] = None) -> None:
        """Initialize Git manager with optional repository path."""
        self.repo_path = (repo_path or Path.cwd()).resolve()
        self._repo: Optional[Repo] = None

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance."""
        if self._repo is None:
            self._repo = self._discover_repository()
        return self._repo

    def _discover_repository(self) -> Repo:
        """Discover the Git repository from current or specified path."""
        search_path = self.repo_path

        logger.debug(f"Discovering repository in: {search_path}")
        # Walk up the directory tree to find a Git repository
        while search_path != search_path.parent:
            try:
                repo = Repo(search_path)
                logger.info(f"Found Git repository at: {search_path}")
                return repo
            except InvalidGitRepositoryError:
                search_path = search_path.parent

        try:
            return Repo(self.repo_path)
        except InvalidGitRepositoryError as e:
            raise GitRepositoryError(
                f"No Git repository found at {self.repo_path} or any parent directory"
            ) from e

    # --- Repository layout ---
    def top_level(self) -> Path:
        """Return the root of the working tree."""
        return Path(self.repo.working_tree_dir).resolve()

    def git_dir(self) -> Path:
        """Return the repository's .git directory."""
        return Path(self.repo.git_dir).resolve()

    def has_remote(self, remote_name: str) -> bool:
        return remote_name in [r.name for r in self.repo.remotes]

    def remote_url(self, remote_name: str = "origin") -> str:
        try:
            return self.repo.remotes[remote_name].url
        except (IndexError, AttributeError) as e:
            raise GitRepositoryError(f"Remote {remote_name} is not configured") from e

    def dir_exists_on_branch(self, directory: str, branch: str) -> bool:
        """Return True if `directory` (relative to the top level) exists on `branch`."""
        if directory in ("", "."):
            return True
        try:
            return self.repo.git.cat_file("-t", f"{branch}:{Path(directory).as_posix()}") == "tree"
        except GitCommandError:
            return False

    # --- Branches ---
    def branch_exists(self, branch_name: str) -> bool:
        """Check if a local branch exists (supports full names with slashes)."""
        return branch_name in [h.name for h in self.repo.heads]

    def get_current_branch(self) -> str:
        """Get the current branch name."""
        try:
            return self.repo.active_branch.name
        except TypeError as e:
            logger.error(f"Error getting current branch: {e}")
            raise GitRepositoryError(f"Could not determine current branch: {e}") from e

    def checkout_branch(self, branch_name: str, force: bool = False) -> None:
        """Checkout a specific branch."""
        args = ["-f", branch_name] if force else [branch_name]
        try:
            self.repo.git.checkout(*args)
            logger.info(f"Checked out branch: {branch_name}")
        except GitCommandError as e:
            logger.error(f"Error checking out branch {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to checkout branch {branch_name}: {e}") from e

    def create_and_checkout_branch(self, branch_name: str) -> None:
        """Create a branch at HEAD and check it out."""
        try:
            self.repo.git.checkout("-b", branch_name)
            logger.info(f"Created and checked out branch: {branch_name}")
        except GitCommandError as e:
            logger.error(f"Error creating branch {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to create branch {branch_name}: {e}") from e

    def create_branch_with_upstream(self, branch_name: str, upstream: str) -> None:
        """Create a branch at `upstream` that tracks it."""
        try:
            self.repo.git.branch("--track", branch_name, upstream)
            logger.info(f"Created branch {branch_name} tracking {upstream}")
        except GitCommandError as e:
            logger.error(f"Error creating branch {branch_name} from {upstream}: {e}")
            raise GitRepositoryError(f"Failed to create branch {branch_name}: {e}") from e

    def delete_branch(self, branch_name: str, force: bool = True) -> None:
        """Delete a local branch."""
        try:
            self.repo.git.branch("-D" if force else "-d", branch_name)
            logger.info(f"Deleted branch {branch_name}")
        except GitCommandError as e:
            logger.error(f"Error deleting branch {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to delete branch {branch_name}: {e}") from e

    # --- Remote synchronization ---
    def fetch(self, remote_name: str, branch_name: str) -> None:
        """Fetch a single branch from a remote."""
        try:
            self.repo.git.fetch(remote_name, branch_name)
            logger.info(f"Fetched {branch_name} from {remote_name}")
        except GitCommandError as e:
            logger.error(f"Failed to fetch {branch_name} from {remote_name}: {e}")
            raise GitRepositoryError(f"Failed to fetch {branch_name} from {remote_name}: {e}") from e

    def push(self, remote: str, refspec: str, verify: bool = True) -> str:
        """Push and return git's combined output.

        Raises PushError carrying the output when git exits non-zero.
        """
        status, stdout, stderr = self.repo.git.push(
            remote,
            refspec,
            "--verify" if verify else "--no-verify",
            with_extended_output=True,
            with_exceptions=False,
        )
        output = "\n".join(part for part in (stdout, stderr) if part)
        if status != 0:
            logger.error(f"Push of {refspec} to {remote} failed: {output}")
            raise PushError(refspec, output)
        logger.info(f"Pushed {refspec} to {remote}")
        return output

    # --- Merging ---
    def merge(self, branch_name: str, squash: bool = False, strategy: Optional[str] = None) -> None:
        """Merge `branch_name` into the current branch.

        A failed merge is reset with `git reset --merge` before MergeError is
        raised, so the working tree is left as it was.
        """
        args: List[str] = []
        if squash:
            args.append("--squash")
        if strategy:
            args.append(f"--strategy={strategy}")
        args.append(branch_name)
        try:
            self.repo.git.merge(*args)
            logger.info(f"Merged {branch_name} into {self.get_current_branch()}")
        except GitCommandError as e:
            logger.warning(f"Merge of {branch_name} failed: {e}")
            self._reset_merge()
            raise MergeError(branch_name, str(e)) from e

    def _reset_merge(self) -> None:
        try:
            self.repo.git.reset("--merge")
        except GitCommandError as e:
            logger.error(f"Failed to reset merge state: {e}")

    def overlay_tree(self, branch_name: str) -> None:
        """Make index and working tree match the tree of `branch_name`."""
        try:
            self.repo.git.read_tree("-u", "--reset", branch_name)
            logger.debug(f"Overlaid tree of {branch_name}")
        except GitCommandError as e:
            logger.error(f"Failed to read tree of {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to read tree of {branch_name}: {e}") from e

    # --- Inspection ---
    def branches_differ(self, branch_a: str, branch_b: str) -> bool:
        """Return True if the two branches have different trees."""
        return bool(self.modified_files(branch_a, branch_b))

    def modified_files(self, base: str, other: str) -> List[str]:
        """Return the paths that differ between `base` and `other`."""
        try:
            output = self.repo.git.diff("--name-only", f"{base}..{other}")
            return [f.strip() for f in output.split("\n") if f.strip()]
        except GitCommandError as e:
            logger.error(f"Error diffing {base}..{other}: {e}")
            raise GitRepositoryError(f"Failed to diff {base}..{other}: {e}") from e

    def commit_messages(self, branch_name: str, base: str) -> str:
        """Return the messages of non-merge commits in `base..branch_name`."""
        try:
            return self.repo.git.log("--no-merges", "--format=%B", f"{base}..{branch_name}")
        except GitCommandError as e:
            logger.error(f"Error reading commit messages of {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to read commit messages of {branch_name}: {e}") from e

    def latest_commit_message(self) -> str:
        """Return the full message of HEAD without its trailing newline."""
        try:
            return self.repo.git.log("-n", "1", "--format=%B")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to read latest commit message: {e}") from e

    def last_commit_dates(self, branch_name: str) -> CommitDates:
        """Return author and committer dates of the tip of `branch_name`."""
        try:
            output = self.repo.git.log("-n", "1", "--format=%ad%n%cd", "--date=raw", branch_name)
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to read commit dates of {branch_name}: {e}") from e
        lines = output.splitlines()
        if len(lines) != 2:
            raise GitRepositoryError(f"Unexpected date output for {branch_name}: {output!r}")
        return CommitDates(author=lines[0].strip(), committer=lines[1].strip())

    def head_commit(self) -> str:
        return self.repo.head.commit.hexsha

    def files_with_uncommitted_changes(self) -> List[str]:
        """Return tracked paths with staged or unstaged changes."""
        try:
            unstaged = self.repo.git.diff("--name-only")
            staged = self.repo.git.diff("--name-only", "--cached")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to list uncommitted changes: {e}") from e
        files: List[str] = []
        for line in (unstaged + "\n" + staged).split("\n"):
            name = line.strip()
            if name and name not in files:
                files.append(name)
        return files

    # --- Committing ---
    def _date_environment(self, dates: Optional[CommitDates]) -> dict:
        if dates is None:
            return {}
        return {"GIT_AUTHOR_DATE": dates.author, "GIT_COMMITTER_DATE": dates.committer}

    def commit(self, message: str, dates: Optional[CommitDates] = None, allow_empty: bool = True) -> None:
        """Commit the index with `message`, optionally pinning the timestamps."""
        args = ["--allow-empty"] if allow_empty else []
        try:
            with self.repo.git.custom_environment(**self._date_environment(dates)):
                self.repo.git.commit(*args, "-m", message)
            logger.info(f"Committed {self.head_commit()[:10]}")
        except GitCommandError as e:
            logger.error(f"Commit failed: {e}")
            raise GitRepositoryError(f"Failed to commit: {e}") from e

    def commit_amend(self, message: str, dates: Optional[CommitDates] = None) -> None:
        """Replace the message of HEAD."""
        try:
            with self.repo.git.custom_environment(**self._date_environment(dates)):
                self.repo.git.commit("--amend", "--allow-empty", "-m", message)
            logger.info(f"Amended commit {self.head_commit()[:10]}")
        except GitCommandError as e:
            logger.error(f"Amend failed: {e}")
            raise GitRepositoryError(f"Failed to amend commit: {e}") from e

    # --- Stash ---
    def stash_size(self) -> int:
        try:
            output = self.repo.git.stash("list")
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to list stash: {e}") from e
        return len([ln for ln in output.splitlines() if ln.strip()])

    def stash(self) -> bool:
        """Stash local changes; return True if a stash entry was created."""
        before = self.stash_size()
        try:
            self.repo.git.stash()
        except GitCommandError as e:
            logger.error(f"Stash failed: {e}")
            raise GitRepositoryError(f"Failed to stash changes: {e}") from e
        stashed = self.stash_size() > before
        if stashed:
            logger.info("Stashed local changes")
        return stashed

    def stash_pop(self) -> None:
        try:
            self.repo.git.stash("pop")
            logger.info("Restored stashed changes")
        except GitCommandError as e:
            logger.error(f"Stash pop failed: {e}")
            raise GitRepositoryError(f"Failed to pop stash: {e}") from e

    def describe_refs(self, refs: List[str]) -> List[Tuple[str, Optional[str]]]:
        """Return (ref, short sha) pairs; missing refs map to None."""
        result: List[Tuple[str, Optional[str]]] = []
        for ref in refs:
            try:
                result.append((ref, self.repo.git.rev_parse("--short", ref).strip()))
            except GitCommandError:
                result.append((ref, None))
        return result
