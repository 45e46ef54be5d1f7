"""
Gerrit review-server operations: push references, pushing and topics.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional
from urllib.parse import urlparse

import requests

from .git_manager import GitManager
from .models import ConfigurationError, GerritError, PushError, ReviewOptions


logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30

_REMOTE_LINE_RE = re.compile(r"^remote:")
_NO_NEW_CHANGES_RE = re.compile(
    r"! \[remote rejected\] HEAD -> refs/(for|drafts)/\S+ \(no new changes\)"
)


def _format_params(values: Iterable[str], key: str) -> List[str]:
    return [f"{key}={value}" for value in values]


def reference(options: ReviewOptions) -> str:
    """Return the magic Gerrit ref a review for `options` is pushed to.

    >>> reference(ReviewOptions(branch="x", reviewers=("a@b.c",)))
    'refs/for/master%r=a@b.c'
    """
    prefix = "refs/drafts/" if options.draft else "refs/for/"
    ref = prefix + options.remote_branch
    params = _format_params(options.reviewers, "r") + _format_params(options.ccs, "cc")
    if params:
        ref = ref + "%" + ",".join(params)
    return ref


def is_no_new_changes(output: str) -> bool:
    """Return True if a push was rejected only because nothing changed."""
    return bool(_NO_NEW_CHANGES_RE.search(output))


def validate_host(host: str) -> str:
    parsed = urlparse(host)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Gerrit host {host!r} must be an http or https URL")
    return host.rstrip("/")


def remote_for_host(host: str, origin_url: str) -> str:
    """Return the push URL of the project at `origin_url` on Gerrit `host`."""
    parsed = urlparse(origin_url)
    if parsed.scheme and parsed.netloc:
        project = parsed.path
    else:
        # scp-like "user@server:path/project.git"
        project = "/" + origin_url.split(":", 1)[-1].lstrip("/")
    return validate_host(host) + project


class GerritClient:
    """Pushes review commits and updates change metadata."""

    def __init__(self, git_manager: GitManager, host: Optional[str] = None) -> None:
        self.git_manager = git_manager
        self.host = validate_host(host) if host else None

    def push(self, options: ReviewOptions) -> List[str]:
        """Push HEAD for review and return the server's "remote:" lines.

        A rejection that only says the change is already up to date is
        treated as success.
        """
        refspec = "HEAD:" + reference(options)
        try:
            output = self.git_manager.push(options.push_remote, refspec, verify=options.verify)
        except PushError as e:
            if is_no_new_changes(e.output):
                logger.info(f"No new changes for {options.branch}; review is up to date")
                return []
            raise GerritError(e.output) from e
        remote_lines = [line for line in output.split("\n") if _REMOTE_LINE_RE.match(line)]
        for line in remote_lines:
            logger.info(line)
        return remote_lines

    def set_topic(self, change_id: str, options: ReviewOptions) -> None:
        """Assign `options.topic` to the change identified by `change_id`.

        Credentials come from the user's ~/.netrc, which requests consults
        when no explicit auth is given.
        """
        if not self.host:
            raise ConfigurationError("A Gerrit host is required to set the topic")
        url = f"{self.host}/a/changes/{change_id}/topic"
        try:
            response = requests.put(
                url,
                json={"topic": options.topic},
                headers={"Content-Type": "application/json;charset=UTF-8"},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Setting topic on {change_id} failed: {e}")
            raise GerritError(f"PUT {url} failed: {e}") from e
        if response.status_code not in (200, 204):
            logger.error(f"Setting topic on {change_id} returned {response.status_code}")
            raise GerritError(f"PUT {url} failed: {response.status_code} {response.text}")
        logger.info(f"Set topic of {change_id} to {options.topic}")
