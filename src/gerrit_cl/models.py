"""
Data models and error types for the changelist tool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


REVIEW_BRANCH_SUFFIX = "-REVIEW"


def review_branch_name(branch: str) -> str:
    """Return the name of the ephemeral review branch for `branch`."""
    return f"{branch}{REVIEW_BRANCH_SUFFIX}"


class PresubmitType(Enum):
    """Which presubmit tests the review server should run."""

    ALL = "all"
    NONE = "none"

    @classmethod
    def names(cls) -> List[str]:
        return [member.value for member in cls]


@dataclass(frozen=True)
class CommitDates:
    """Author and committer timestamps of a commit, in git's raw format."""

    author: str
    committer: str


@dataclass(frozen=True)
class ReviewOptions:
    """Options for a single review submission.

    Instances are immutable; every stage of the submission receives the same
    value.
    """

    branch: str
    remote_branch: str = "master"
    remote: str = "origin"
    gerrit_remote: Optional[str] = None
    host: Optional[str] = None
    topic: Optional[str] = None
    draft: bool = False
    autosubmit: bool = False
    presubmit: PresubmitType = PresubmitType.ALL
    reviewers: Tuple[str, ...] = ()
    ccs: Tuple[str, ...] = ()
    edit: bool = True
    message: Optional[str] = None
    message_body: Optional[str] = None
    verify: bool = True
    set_topic: bool = False
    check_uncommitted: bool = True
    dry_run: bool = False

    @property
    def review_branch(self) -> str:
        return review_branch_name(self.branch)

    @property
    def push_remote(self) -> str:
        """Remote (name or URL) that review commits are pushed to."""
        return self.gerrit_remote or self.remote


@dataclass
class ChainStatus:
    """Structured view of a branch's dependency chain for display."""

    branch: str
    upstream: Optional[str]
    ancestors: List[str] = field(default_factory=list)
    exported: List[str] = field(default_factory=list)

    def is_exported(self, branch: str) -> bool:
        return branch in self.exported


class ErrorKind(Enum):
    """Categories of failures reported to the user."""

    UNCOMMITTED_CHANGES = "uncommitted_changes"
    EMPTY_CHANGE = "empty_change"
    CHANGE_CONFLICT = "change_conflict"
    NO_CHANGE_ID = "no_change_id"
    GERRIT = "gerrit"
    RECORD_UNREADABLE = "record_unreadable"
    GIT = "git"
    PRECONDITION = "precondition"


def _retry_steps(*steps: str) -> str:
    return "The following steps are needed before the operation can be retried:\n" + "\n".join(steps)


class CLError(Exception):
    """Base exception for changelist operations."""

    kind = ErrorKind.PRECONDITION


class GitRepositoryError(CLError):
    """Exception raised for Git repository related errors."""

    kind = ErrorKind.GIT


class MergeError(GitRepositoryError):
    """A merge could not be completed; the merge state has been reset."""

    def __init__(self, branch: str, detail: str) -> None:
        self.branch = branch
        self.detail = detail
        super().__init__(f"Failed to merge {branch}: {detail}")


class PushError(GitRepositoryError):
    """`git push` exited unsuccessfully."""

    def __init__(self, refspec: str, output: str) -> None:
        self.refspec = refspec
        self.output = output
        super().__init__(output)


class UncommittedChangesError(CLError):
    """The working tree has changes that would be lost."""

    kind = ErrorKind.UNCOMMITTED_CHANGES

    def __init__(self, files: List[str]) -> None:
        self.files = list(files)
        super().__init__(str(self))

    def __str__(self) -> str:
        lines = ["uncommitted local changes in files:"]
        lines.extend(f"  {f}" for f in self.files)
        return "\n".join(lines)


class EmptyChangeError(CLError):
    """The branch has no changes relative to the upstream branch."""

    kind = ErrorKind.EMPTY_CHANGE

    def __init__(self, branch: str, remote_branch: str = "") -> None:
        self.branch = branch
        self.remote_branch = remote_branch
        super().__init__(str(self))

    def __str__(self) -> str:
        return "current branch has no commits"


class ChangeConflictError(CLError):
    """A branch cannot be merged cleanly with another branch."""

    kind = ErrorKind.CHANGE_CONFLICT

    def __init__(self, local_branch: str, remote_branch: str, detail: str = "", remote: str = "origin") -> None:
        self.local_branch = local_branch
        self.remote_branch = remote_branch
        self.detail = detail
        self.remote = remote
        super().__init__(str(self))

    def __str__(self) -> str:
        return (
            f"changelist conflicts with the remote {self.remote_branch} branch\n\n"
            f"To resolve this problem, run 'git pull {self.remote} {self.remote_branch}:{self.local_branch}',\n"
            f"resolve the conflicts identified below, and then try again.\n{self.detail}"
        )


class SyncConflictError(ChangeConflictError):
    """Merging an ancestor into its descendant failed during sync."""

    def __init__(self, ancestor: str, descendant: str, original_branch: str, detail: str = "") -> None:
        self.ancestor = ancestor
        self.descendant = descendant
        self.original_branch = original_branch
        super().__init__(local_branch=descendant, remote_branch=ancestor, detail=detail)

    def __str__(self) -> str:
        return (
            f"Failed to automatically merge branch {self.ancestor} into branch {self.descendant}: "
            f"{self.detail}\n"
            + _retry_steps(
                f"$ git checkout {self.descendant}",
                f"$ git merge {self.ancestor}",
                "# resolve all conflicts",
                "$ git commit -a",
                f"$ git checkout {self.original_branch}",
                "# retry the original operation",
            )
        )


class NoChangeIDError(CLError):
    """The review commit carries no Change-Id trailer."""

    kind = ErrorKind.NO_CHANGE_ID

    def __init__(self, branch: str = "") -> None:
        self.branch = branch
        super().__init__(str(self))

    def __str__(self) -> str:
        return "changelist is missing a Change-ID"


class GerritError(CLError):
    """The review server rejected a request."""

    kind = ErrorKind.GERRIT

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"sending code review failed\n\n{self.detail}"


class RecordUnreadableError(CLError):
    """A branch metadata record exists but cannot be read."""

    kind = ErrorKind.RECORD_UNREADABLE

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"could not read branch metadata {self.path}: {self.detail}"


class ReviewFromUpstreamError(CLError):
    """A review was requested from the upstream branch itself."""

    def __init__(self, branch: str) -> None:
        self.branch = branch
        super().__init__(f"cannot do a review from the {branch} branch.")


class UnexportedAncestorError(CLError):
    """A dependent branch is mailed before one of its ancestors."""

    def __init__(self, branch: str, ancestor: str) -> None:
        self.branch = branch
        self.ancestor = ancestor
        super().__init__(str(self))

    def __str__(self) -> str:
        return (
            f'Failed to export the branch "{self.branch}" to Gerrit because its ancestor '
            f'"{self.ancestor}" has not been exported to Gerrit yet.\n'
            + _retry_steps(
                f"$ git checkout {self.ancestor}",
                "$ gerrit-cl mail",
                f"$ git checkout {self.branch}",
                "# retry the original command",
            )
        )


class UnmergedChangesError(CLError):
    """A branch still differs from upstream and cannot be cleaned up."""

    def __init__(self, branch: str, remote_branch: str, files: List[str]) -> None:
        self.branch = branch
        self.remote_branch = remote_branch
        self.files = list(files)
        super().__init__(str(self))

    def __str__(self) -> str:
        lines = ["unmerged changes in"]
        lines.extend(self.files)
        return "\n".join(lines)


class WorkingDirectoryError(CLError):
    """The current directory does not exist on the upstream branch."""

    def __init__(self, directory: str, branch: str) -> None:
        self.directory = directory
        self.branch = branch
        super().__init__(
            f"directory {directory!r} does not exist on branch {branch!r}.\n"
            f"Please run 'gerrit-cl mail' from one of the branch's directories."
        )


class ConfigurationError(CLError):
    """Invalid option or configuration value."""

    pass
