"""
Commit-message trailer handling.

A review commit message carries a free-form body followed by optional
trailer lines understood by the review server:

    AutoSubmit
    PresubmitTest: none
    MultiPart: 1/3
    Change-Id: I0123456789abcdef0123456789abcdef01234567

Trailers are recognised only as whole lines. Rendering always emits them in
the order above, with the Change-Id last, so parsing and rendering a rendered
message gives back the same text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional

from .models import PresubmitType, ReviewOptions


CHANGE_ID_RE = re.compile(r"Change-Id: (I[0-9a-fA-F]{40})")
_CHANGE_ID_LINE_RE = re.compile(r"^Change-Id: I[0-9a-fA-F]{40}\s*$")
_AUTOSUBMIT_LINE_RE = re.compile(r"^AutoSubmit\s*$")
_PRESUBMIT_LINE_RE = re.compile(r"^PresubmitTest:\s*(.*?)\s*$")
_MULTIPART_LINE_RE = re.compile(r"^MultiPart: \d+/\d+\s*$")

DEFAULT_MESSAGE_HEADER = """
# Describe your changelist, specifying what package(s) your change
# pertains to, followed by a short summary and, in case of non-trivial
# changelists, provide a detailed description.
#
# For example:
#
# rpc/stream/proxy: add publish address
#
# The listen address is not always the same as the address that external
# users need to connect to. This CL adds a new argument to proxy.New()
# to specify the published address that clients should connect to.

# FYI, you are about to submit the following local commits for review:
#
"""


@dataclass(frozen=True)
class CommitMessage:
    """A commit message split into its body and review trailers."""

    body: str
    autosubmit: bool = False
    presubmit: str = PresubmitType.ALL.value
    multipart: Optional[str] = None
    change_id: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "CommitMessage":
        body_lines = []
        autosubmit = False
        presubmit = PresubmitType.ALL.value
        multipart = None
        change_id = None
        for line in text.splitlines(keepends=True):
            content = line.rstrip("\r\n")
            if _AUTOSUBMIT_LINE_RE.match(content):
                autosubmit = True
                continue
            match = _PRESUBMIT_LINE_RE.match(content)
            if match:
                presubmit = match.group(1) or PresubmitType.ALL.value
                continue
            if _MULTIPART_LINE_RE.match(content):
                if multipart is None:
                    multipart = content.strip()
                continue
            if _CHANGE_ID_LINE_RE.match(content):
                if change_id is None:
                    change_id = CHANGE_ID_RE.search(content).group(1)
                continue
            body_lines.append(line)
        return cls(
            body="".join(body_lines),
            autosubmit=autosubmit,
            presubmit=presubmit,
            multipart=multipart,
            change_id=change_id,
        )

    def render(self) -> str:
        message = self.body
        labels = ""
        if self.autosubmit:
            labels += "AutoSubmit\n"
        if self.presubmit != PresubmitType.ALL.value:
            labels += f"PresubmitTest: {self.presubmit}\n"
        if labels and message and not message.endswith("\n"):
            message += "\n"
        message += labels
        if self.multipart:
            if message and not message.endswith("\n"):
                message += "\n"
            message += self.multipart
        if self.change_id:
            if message and not message.endswith("\n"):
                message += "\n"
            message += f"Change-Id: {self.change_id}"
        return message


def process_labels(message: str, options: ReviewOptions) -> str:
    """Rewrite the label trailers of `message` to match `options`.

    Existing AutoSubmit and PresubmitTest lines are replaced by the requested
    ones; MultiPart and Change-Id lines are preserved and moved to the end.
    When `options.message_body` is set it replaces the body.
    """
    parsed = CommitMessage.parse(message)
    if options.message_body is not None:
        parsed = replace(parsed, body=CommitMessage.parse(options.message_body).body)
    return replace(
        parsed,
        autosubmit=options.autosubmit,
        presubmit=options.presubmit.value,
    ).render()


def find_change_id(message: str) -> Optional[str]:
    """Return the Change-Id carried by `message`, if any."""
    match = CHANGE_ID_RE.search(message)
    return match.group(1) if match else None


def strip_comment_lines(message: str) -> str:
    """Drop lines starting with '#', as git does for edited messages."""
    kept = [line for line in message.splitlines(keepends=True) if not line.startswith("#")]
    body = "".join(kept).strip("\n")
    return body + "\n" if body else ""


def default_message(commit_messages: str) -> str:
    """Build the message offered for a branch's first review.

    The branch's commit log is appended as comments below a short header,
    with Change-Id and MultiPart lines removed so that they are not picked up
    again if the user keeps them.
    """
    stripped = "".join(
        line
        for line in commit_messages.splitlines(keepends=True)
        if not _CHANGE_ID_LINE_RE.match(line.rstrip("\r\n"))
        and not _MULTIPART_LINE_RE.match(line.rstrip("\r\n"))
    )
    commented = "# " + stripped.replace("\n", "\n# ")
    return DEFAULT_MESSAGE_HEADER + commented
