"""
Tests for Gerrit references, pushing and topics.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from gerrit_cl.gerrit import (
    REQUEST_TIMEOUT,
    GerritClient,
    is_no_new_changes,
    reference,
    remote_for_host,
    validate_host,
)
from gerrit_cl.git_manager import GitManager
from gerrit_cl.models import ConfigurationError, GerritError, PushError, ReviewOptions


CHANGE_ID = "I0000000000000000000000000000000000000000"


class TestReference:
    """Magic refs that Gerrit turns into reviews."""

    def test_plain(self):
        assert reference(ReviewOptions(branch="f")) == "refs/for/master"

    def test_draft(self):
        assert reference(ReviewOptions(branch="f", draft=True, remote_branch="main")) == "refs/drafts/main"

    def test_reviewers_and_ccs(self):
        options = ReviewOptions(branch="f", reviewers=("a@x.com", "b@x.com"), ccs=("c@x.com",))
        assert reference(options) == "refs/for/master%r=a@x.com,r=b@x.com,cc=c@x.com"


def test_no_new_changes_detection():
    output = "To https://review.example.com/p\n ! [remote rejected] HEAD -> refs/for/master (no new changes)\n"
    assert is_no_new_changes(output)
    assert not is_no_new_changes(" ! [remote rejected] HEAD -> refs/for/master (prohibited by Gerrit)")


class TestHosts:
    """Host validation and push URL derivation."""

    def test_validate_host_strips_trailing_slash(self):
        assert validate_host("https://review.example.com/") == "https://review.example.com"

    @pytest.mark.parametrize("host", ["review.example.com", "ftp://review.example.com", "https://"])
    def test_invalid_hosts(self, host):
        with pytest.raises(ConfigurationError):
            validate_host(host)

    @pytest.mark.parametrize(
        "origin,expected",
        [
            ("https://git.example.com/team/project", "https://review.example.com/team/project"),
            ("ssh://me@git.example.com:29418/team/project.git", "https://review.example.com/team/project.git"),
            ("me@git.example.com:team/project.git", "https://review.example.com/team/project.git"),
        ],
    )
    def test_remote_for_host(self, origin, expected):
        assert remote_for_host("https://review.example.com", origin) == expected


class TestPush:
    """Pushing review commits."""

    def setup_method(self):
        self.git_manager = Mock(spec=GitManager)
        self.client = GerritClient(self.git_manager)

    def test_push_returns_remote_lines(self):
        self.git_manager.push.return_value = (
            "remote: Processing changes: new: 1\n"
            "remote:   https://review.example.com/c/p/+/1 summary\n"
            "To https://review.example.com/p"
        )
        options = ReviewOptions(branch="f", gerrit_remote="gerrit", verify=False)

        lines = self.client.push(options)

        self.git_manager.push.assert_called_once_with("gerrit", "HEAD:refs/for/master", verify=False)
        assert lines == [
            "remote: Processing changes: new: 1",
            "remote:   https://review.example.com/c/p/+/1 summary",
        ]

    def test_no_new_changes_is_success(self):
        self.git_manager.push.side_effect = PushError(
            "HEAD:refs/for/master", " ! [remote rejected] HEAD -> refs/for/master (no new changes)"
        )
        assert self.client.push(ReviewOptions(branch="f")) == []

    def test_rejection_becomes_gerrit_error(self):
        output = " ! [remote rejected] HEAD -> refs/for/master (missing Change-Id)"
        self.git_manager.push.side_effect = PushError("HEAD:refs/for/master", output)

        with pytest.raises(GerritError) as excinfo:
            self.client.push(ReviewOptions(branch="f"))

        assert excinfo.value.detail == output


class TestSetTopic:
    """Setting the topic over the REST API."""

    def setup_method(self):
        self.client = GerritClient(Mock(spec=GitManager), "https://review.example.com")
        self.options = ReviewOptions(branch="f", topic="alice-f")

    @patch("gerrit_cl.gerrit.requests.put")
    def test_set_topic(self, mock_put):
        mock_put.return_value = Mock(status_code=200, text="alice-f")

        self.client.set_topic(CHANGE_ID, self.options)

        mock_put.assert_called_once_with(
            f"https://review.example.com/a/changes/{CHANGE_ID}/topic",
            json={"topic": "alice-f"},
            headers={"Content-Type": "application/json;charset=UTF-8"},
            timeout=REQUEST_TIMEOUT,
        )

    @patch("gerrit_cl.gerrit.requests.put")
    def test_http_failure(self, mock_put):
        mock_put.return_value = Mock(status_code=401, text="Unauthorized")
        with pytest.raises(GerritError) as excinfo:
            self.client.set_topic(CHANGE_ID, self.options)
        assert "401" in str(excinfo.value)

    @patch("gerrit_cl.gerrit.requests.put", side_effect=requests.exceptions.ConnectionError("refused"))
    def test_connection_failure(self, mock_put):
        with pytest.raises(GerritError):
            self.client.set_topic(CHANGE_ID, self.options)

    def test_host_required(self):
        client = GerritClient(Mock(spec=GitManager))
        with pytest.raises(ConfigurationError):
            client.set_topic(CHANGE_ID, self.options)
