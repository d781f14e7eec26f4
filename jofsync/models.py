"""Shared pydantic models: the contract between sources, stores and the reconciler."""

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator


class Issue(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str  # tracker key, e.g. OPS-1
    summary: str
    description: str | None = None
    due_date: date | None = None
    resolution: str | None = None  # any value means closed/done
    assignee: str | None = None


class Task(BaseModel):
    """A task as read back from the task store."""

    model_config = ConfigDict(frozen=True)

    id: str  # store-native handle
    name: str
    note: str = ""
    completed: bool = False
    flagged: bool = False


class TaskRequest(BaseModel):
    """Everything the store needs to create a task, and nothing else."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    note: str = ""
    project: str | None = None
    context: str | None = None
    flagged: bool = False
    due_date: date | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("task name must not be blank")
        return value

    @field_validator("project", "context")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        return value or None


class Scope(BaseModel):
    """Where to search for, or create, a task.

    inbox:   the inbox
    all:     every task in the document (search only)
    project: a single named project
    folder:  a new project inside a named folder (create only)
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["inbox", "all", "project", "folder"]
    name: str | None = None

    @classmethod
    def inbox(cls) -> "Scope":
        return cls(kind="inbox")

    @classmethod
    def all_tasks(cls) -> "Scope":
        return cls(kind="all")

    @classmethod
    def project(cls, name: str) -> "Scope":
        return cls(kind="project", name=name)

    @classmethod
    def folder(cls, name: str) -> "Scope":
        return cls(kind="folder", name=name)


class SyncFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: str  # issue id or task name
    stage: Literal["create", "cleanup"]
    error: str


class SyncReport(BaseModel):
    """Outcome of one run. Lists hold issue ids."""

    created: list[str] = []
    skipped: list[str] = []
    completed: list[str] = []
    deleted: list[str] = []
    failures: list[SyncFailure] = []

    @property
    def ok(self) -> bool:
        return not self.failures
