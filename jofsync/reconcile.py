"""Create-pass and cleanup-pass between the issue source and the task store."""

import logging
from enum import Enum

from jofsync import codec
from jofsync.errors import IssueLookupError, SyncError, TaskStoreError
from jofsync.models import Issue, Scope, SyncFailure, SyncReport, Task, TaskRequest
from jofsync.settings import JofsyncSettings
from jofsync.sources.base import IssueSource
from jofsync.stores.base import TaskStore

logger = logging.getLogger(__name__)


class Action(Enum):
    COMPLETE = "complete"
    DELETE = "delete"
    NONE = "none"


def decide(issue: Issue, username: str) -> Action:
    """What the cleanup-pass does with the task linked to issue.

    A resolved issue always completes its task, whoever it is assigned to.
    An open issue that is unassigned or assigned to someone else deletes it;
    the create-pass brings it back if it is assigned back.
    """
    if issue.resolution is not None:
        return Action.COMPLETE
    if issue.assignee is None:
        return Action.DELETE
    if issue.assignee.lower() != username.lower():
        return Action.DELETE
    return Action.NONE


class Reconciler:
    def __init__(self, source: IssueSource, store: TaskStore, settings: JofsyncSettings) -> None:
        self._source = source
        self._store = store
        self._jira = settings.jira
        self._omnifocus = settings.omnifocus

    # ------------------------------------------------------------------
    # scopes
    # ------------------------------------------------------------------

    def search_scope(self) -> Scope:
        if self._omnifocus.inbox:
            return Scope.inbox()
        if self._omnifocus.newproj:
            return Scope.all_tasks()
        return Scope.project(self._omnifocus.project)

    def create_scope(self) -> Scope:
        if self._omnifocus.inbox:
            return Scope.inbox()
        if self._omnifocus.newproj:
            return Scope.folder(self._omnifocus.folder)
        return Scope.project(self._omnifocus.project)

    def build_request(self, issue: Issue) -> TaskRequest:
        name, note = codec.encode(issue, self._jira.hostname)
        return TaskRequest(
            name=name,
            note=note,
            project=None if self._omnifocus.inbox or self._omnifocus.newproj else self._omnifocus.project,
            context=self._omnifocus.context,
            flagged=self._omnifocus.flag,
            due_date=issue.due_date,
        )

    # ------------------------------------------------------------------
    # passes
    # ------------------------------------------------------------------

    def create_pass(self, report: SyncReport) -> None:
        """Create a task for every matching issue that has none yet.

        Errors from the search itself propagate; errors for one issue are
        recorded and the next issue is processed.
        """
        issues = self._source.search(self._jira.filter)
        search_scope = self.search_scope()
        create_scope = self.create_scope()

        for issue in issues:
            try:
                request = self.build_request(issue)
                if self._store.find_by_name(request.name, search_scope) is not None:
                    logger.debug("%s already has a task, skipping", issue.id)
                    report.skipped.append(issue.id)
                    continue
                self._store.create(request, create_scope)
                report.created.append(issue.id)
            except SyncError as exc:
                logger.error("Could not create a task for %s: %s", issue.id, exc)
                report.failures.append(SyncFailure(item=issue.id, stage="create", error=str(exc)))

    def cleanup_pass(self, report: SyncReport) -> None:
        """Complete or delete linked tasks according to their issue's current state."""
        for task in self._store.all_linked_tasks():
            if task.completed:
                continue
            issue_id = codec.decode(task.note, self._jira.hostname)
            if issue_id is None:
                continue
            try:
                issue = self._source.fetch(issue_id)
            except IssueLookupError as exc:
                logger.error("Could not look up %s for task '%s': %s", issue_id, task.name, exc)
                report.failures.append(SyncFailure(item=issue_id, stage="cleanup", error=str(exc)))
                continue
            self._apply(decide(issue, self._jira.username), task, issue, report)

    def _apply(self, action: Action, task: Task, issue: Issue, report: SyncReport) -> None:
        try:
            match action:
                case Action.COMPLETE:
                    self._store.complete(task)
                    report.completed.append(issue.id)
                    logger.info("Marked task completed %s", issue.id)
                case Action.DELETE:
                    self._store.delete(task)
                    report.deleted.append(issue.id)
                    logger.info(
                        "Deleted task %s (assigned to %s)",
                        issue.id,
                        issue.assignee or "nobody",
                    )
                case Action.NONE:
                    pass
        except TaskStoreError as exc:
            logger.error("Could not %s task '%s': %s", action.value, task.name, exc)
            report.failures.append(SyncFailure(item=issue.id, stage="cleanup", error=str(exc)))

    def run(self) -> SyncReport:
        report = SyncReport()
        self.create_pass(report)
        self.cleanup_pass(report)
        logger.info(
            "Sync finished: %d created, %d completed, %d deleted, %d failed",
            len(report.created),
            len(report.completed),
            len(report.deleted),
            len(report.failures),
        )
        return report
