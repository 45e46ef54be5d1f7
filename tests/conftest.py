"""
Shared fixtures: an upstream repository, a developer clone and a bare
repository standing in for Gerrit.
"""

from __future__ import annotations

import stat
from dataclasses import dataclass
from pathlib import Path

import pytest
from git import Repo

from gerrit_cl.git_manager import GitManager
from gerrit_cl.metadata_store import BranchMetadataStore


CHANGE_ID = "I0000000000000000000000000000000000000000"

# Stand-in for Gerrit's commit-msg hook: adds a fixed Change-Id once.
COMMIT_MSG_HOOK = f"""#!/bin/sh
grep -q '^Change-Id:' "$1" || printf '\\nChange-Id: {CHANGE_ID}\\n' >> "$1"
"""


def configure_identity(repo: Repo) -> None:
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")
        writer.set_value("commit", "gpgsign", "false")
        writer.set_value("pull", "rebase", "false")


def commit_file(repo: Repo, name: str, content: str, message: str) -> str:
    """Write `name` in `repo`'s working tree and commit it with git."""
    path = Path(repo.working_tree_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.git.add("--", name)
    repo.git.commit("-m", message)
    return repo.head.commit.hexsha


def install_hook(repo: Repo) -> Path:
    hook = Path(repo.git_dir) / "hooks" / "commit-msg"
    hook.parent.mkdir(parents=True, exist_ok=True)
    hook.write_text(COMMIT_MSG_HOOK)
    hook.chmod(hook.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return hook


@dataclass
class Repos:
    origin: Repo
    clone: Repo
    gerrit: Repo
    root: Path

    @property
    def clone_path(self) -> Path:
        return Path(self.clone.working_tree_dir)

    @property
    def gerrit_path(self) -> str:
        return str(Path(self.gerrit.git_dir))

    def checkout_new(self, name: str) -> None:
        self.clone.git.checkout("-b", name)

    def branches(self) -> list:
        return [h.name for h in self.clone.heads]

    def gerrit_refs(self) -> list:
        output = self.gerrit.git.for_each_ref("--format=%(refname)")
        return [line for line in output.splitlines() if line]


@pytest.fixture
def repos(tmp_path, monkeypatch) -> Repos:
    monkeypatch.setenv("GERRIT_CL_LOG", str(tmp_path / "logs" / "gerrit-cl.log"))
    for var in ("GIT_AUTHOR_DATE", "GIT_COMMITTER_DATE"):
        monkeypatch.delenv(var, raising=False)

    origin = Repo.init(tmp_path / "origin", initial_branch="master")
    configure_identity(origin)
    with origin.config_writer() as writer:
        writer.set_value("receive", "denyCurrentBranch", "updateInstead")
    commit_file(origin, "README", "line one\nline two\n", "Initial commit")

    clone = Repo.clone_from(str(tmp_path / "origin"), str(tmp_path / "clone"))
    configure_identity(clone)
    install_hook(clone)

    gerrit = Repo.init(tmp_path / "gerrit", bare=True)

    monkeypatch.chdir(tmp_path / "clone")
    return Repos(origin=origin, clone=clone, gerrit=gerrit, root=tmp_path)


@pytest.fixture
def git_manager(repos) -> GitManager:
    return GitManager(repos.clone_path)


@pytest.fixture
def store(git_manager) -> BranchMetadataStore:
    return BranchMetadataStore(git_manager.git_dir())


def current_branch(repo: Repo) -> str:
    return repo.active_branch.name


def stash_size(repo: Repo) -> int:
    return len([line for line in repo.git.stash("list").splitlines() if line.strip()])


def no_review_branches(repo: Repo) -> bool:
    return not any(h.name.endswith("-REVIEW") for h in repo.heads)
