"""
Tests for settings and option parsing helpers.
"""

import pytest

from gerrit_cl.config import CONFIG_SECTION, Settings, default_topic, parse_emails
from gerrit_cl.git_manager import GitManager


@pytest.mark.parametrize(
    "value,domain,expected",
    [
        (None, None, []),
        ("", "example.com", []),
        ("alice", None, ["alice"]),
        ("alice", "example.com", ["alice@example.com"]),
        ("alice, bob@other.org,,", "example.com", ["alice@example.com", "bob@other.org"]),
    ],
)
def test_parse_emails(value, domain, expected):
    assert parse_emails(value, domain) == expected


def test_default_topic(monkeypatch):
    monkeypatch.setenv("USER", "alice")
    assert default_topic("feature1") == "alice-feature1"


def test_settings_defaults(repos):
    settings = Settings.load(GitManager(repos.clone_path))
    assert settings == Settings()


def test_settings_from_git_config(repos):
    with repos.clone.config_writer() as writer:
        writer.set_value(CONFIG_SECTION, "host", "https://review.example.com")
        writer.set_value(CONFIG_SECTION, "remote-branch", "main")
        writer.set_value(CONFIG_SECTION, "email-domain", "example.com")

    settings = Settings.load(GitManager(repos.clone_path))

    assert settings.host == "https://review.example.com"
    assert settings.remote_branch == "main"
    assert settings.remote == "origin"
    assert settings.email_domain == "example.com"
