"""Shared test fixtures."""

import os

import pytest
from fakes import FakeIssueSource, InMemoryTaskStore

import jofsync.settings as settings_module
from jofsync.models import Issue
from jofsync.settings import JiraSettings, JofsyncSettings, OmniFocusSettings

HOSTNAME = "http://jira.example.com"


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Never read the real ~/.config/jofsync/config.toml or JOFSYNC_* env vars."""
    monkeypatch.setattr(settings_module, "CONFIG_PATH", tmp_path / "missing.toml")
    monkeypatch.chdir(tmp_path)
    for key in [k for k in os.environ if k.startswith("JOFSYNC_")]:
        monkeypatch.delenv(key)
    settings_module._load_toml.cache_clear()
    yield
    settings_module._load_toml.cache_clear()


@pytest.fixture
def settings() -> JofsyncSettings:
    return JofsyncSettings(
        jira=JiraSettings(hostname=HOSTNAME, username="alice", password="secret"),
        omnifocus=OmniFocusSettings(),
    )


@pytest.fixture
def open_issue() -> Issue:
    return Issue(id="OPS-1", summary="Fix disk", description="Disk /dev/sda1 is full.", assignee="alice")


@pytest.fixture
def source() -> FakeIssueSource:
    return FakeIssueSource()


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()
