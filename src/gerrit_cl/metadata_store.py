"""
Per-branch metadata kept inside the repository's .git directory.

Every changelist branch gets a directory `<git-dir>/gerrit-cl/<branch>/`
holding up to two files:

- `.dependency_path`: the branch's ancestors, one per line, upstream first.
- `.gerrit_commit_message`: the message of the last review mailed for it.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Optional

from .models import RecordUnreadableError


logger = logging.getLogger(__name__)

METADATA_DIR_NAME = "gerrit-cl"
DEPENDENCY_PATH_FILE = ".dependency_path"
COMMIT_MESSAGE_FILE = ".gerrit_commit_message"


class BranchMetadataStore:
    """Reads and writes dependency and commit-message records."""

    def __init__(self, git_dir: Path) -> None:
        self.root = Path(git_dir) / METADATA_DIR_NAME

    def branch_dir(self, branch: str) -> Path:
        return self.root / branch

    def dependency_path_file(self, branch: str) -> Path:
        return self.branch_dir(branch) / DEPENDENCY_PATH_FILE

    def commit_message_file(self, branch: str) -> Path:
        return self.branch_dir(branch) / COMMIT_MESSAGE_FILE

    def _read(self, path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise RecordUnreadableError(str(path), str(e)) from e

    def _write(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.debug(f"Wrote {path}")

    # --- Dependency records ---
    def read_dependencies(self, branch: str) -> Optional[List[str]]:
        """Return the recorded ancestors of `branch`, or None when unrecorded."""
        data = self._read(self.dependency_path_file(branch))
        if data is None:
            return None
        data = data.strip()
        return data.split("\n") if data else []

    def write_dependencies(self, branch: str, ancestors: List[str]) -> None:
        self._write(self.dependency_path_file(branch), "\n".join(ancestors))

    # --- Commit message records ---
    def read_commit_message(self, branch: str) -> Optional[str]:
        return self._read(self.commit_message_file(branch))

    def has_commit_message(self, branch: str) -> bool:
        return self.commit_message_file(branch).is_file()

    def write_commit_message(self, branch: str, message: str) -> None:
        self._write(self.commit_message_file(branch), message)

    # --- Removal ---
    def recorded_branches(self) -> List[str]:
        """Return every branch that has a dependency record."""
        if not self.root.is_dir():
            return []
        return sorted(
            path.parent.relative_to(self.root).as_posix()
            for path in self.root.rglob(DEPENDENCY_PATH_FILE)
        )

    def remove_branch(self, branch: str) -> None:
        """Delete the records of `branch` and drop it from every other chain."""
        branch_dir = self.branch_dir(branch)
        if branch_dir.is_dir():
            shutil.rmtree(branch_dir)
            logger.info(f"Removed metadata for {branch}")
        for other in self.recorded_branches():
            ancestors = self.read_dependencies(other) or []
            if branch in ancestors:
                ancestors.remove(branch)
                self.write_dependencies(other, ancestors)
                logger.info(f"Removed {branch} from the dependency path of {other}")
