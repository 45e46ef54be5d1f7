"""
UI-agnostic prompt interface for user interactions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List


class UserPrompt(ABC):
    """Abstract interface for prompting users for decisions."""

    @abstractmethod
    def confirm_label_changes(self, branch: str, changes: List[str]) -> bool:
        """
        Ask the user to approve changed review labels before resubmitting.

        Args:
            branch: Branch being mailed
            changes: Lines such as "presubmit=all to presubmit=none"

        Returns:
            True if the submission should continue, False otherwise
        """
        pass

    @abstractmethod
    def edit_commit_message(self, branch: str, message: str) -> str:
        """
        Let the user edit the review commit message.

        Args:
            branch: Branch being mailed
            message: Proposed message, possibly containing '#' comment lines

        Returns:
            The edited message (comment lines may still be present)
        """
        pass


class NoOpPrompt(UserPrompt):
    """No-operation prompt that always returns safe defaults."""

    def confirm_label_changes(self, branch: str, changes: List[str]) -> bool:
        return False

    def edit_commit_message(self, branch: str, message: str) -> str:
        return message
