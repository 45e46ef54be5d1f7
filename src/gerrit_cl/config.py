"""
Configuration read from git config and the environment.

Settings live in the `[gerrit-cl]` section of any git config file, e.g.:

    [gerrit-cl]
        host = https://review.example.com
        remote = origin
        remote-branch = main
        email-domain = example.com
"""

from __future__ import annotations

import getpass
import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from .git_manager import GitManager


logger = logging.getLogger(__name__)

CONFIG_SECTION = "gerrit-cl"


@dataclass
class Settings:
    """Defaults for command-line options."""

    remote: str = "origin"
    remote_branch: str = "master"
    host: Optional[str] = None
    email_domain: Optional[str] = None

    @classmethod
    def load(cls, git_manager: GitManager) -> "Settings":
        settings = cls()
        reader = git_manager.repo.config_reader()
        if not reader.has_section(CONFIG_SECTION):
            return settings
        settings.remote = str(reader.get_value(CONFIG_SECTION, "remote", settings.remote))
        settings.remote_branch = str(
            reader.get_value(CONFIG_SECTION, "remote-branch", settings.remote_branch)
        )
        settings.host = str(reader.get_value(CONFIG_SECTION, "host", "")) or None
        settings.email_domain = str(reader.get_value(CONFIG_SECTION, "email-domain", "")) or None
        logger.debug(f"Loaded settings: {settings}")
        return settings


def current_user() -> str:
    """Return the login name used in default topics."""
    return os.environ.get("USER") or getpass.getuser()


def default_topic(branch: str) -> str:
    return f"{current_user()}-{branch}"


def parse_emails(value: Optional[str], default_domain: Optional[str] = None) -> List[str]:
    """Split a comma-separated list of reviewers.

    Bare user names get `@<default_domain>` appended when a domain is set.
    """
    if not value:
        return []
    emails = []
    for token in value.split(","):
        token = token.strip()
        if not token:
            continue
        if "@" not in token and default_domain:
            token = f"{token}@{default_domain}"
        emails.append(token)
    return emails
