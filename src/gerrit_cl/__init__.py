"""
Gerrit changelist tool - stacked feature branches mailed as dependent reviews.

This package keeps chains of dependent local branches in sync with their
upstream branch and squashes each of them into a single reviewable commit
that is pushed to Gerrit.
"""

__version__ = "0.1.0"

from .models import ReviewOptions, PresubmitType, CLError
from .git_manager import GitManager
from .metadata_store import BranchMetadataStore
from .chain_manager import ChainManager
from .review_builder import ReviewBranchBuilder
from .review import Review, ReviewResult

__all__ = [
    "ReviewOptions",
    "PresubmitType",
    "CLError",
    "GitManager",
    "BranchMetadataStore",
    "ChainManager",
    "ReviewBranchBuilder",
    "Review",
    "ReviewResult",
    "__version__",
]
