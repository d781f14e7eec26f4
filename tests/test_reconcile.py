"""Tests for jofsync.reconcile against the in-memory source and store."""

import re
from datetime import date

import pytest
from fakes import FakeIssueSource, InMemoryTaskStore
from pytest_httpx import HTTPXMock

from jofsync.codec import encode
from jofsync.errors import QueryError, TaskStoreError
from jofsync.models import Issue, Scope, SyncReport
from jofsync.reconcile import Action, Reconciler, decide
from jofsync.settings import JofsyncSettings, OmniFocusSettings
from jofsync.sources.jira import JiraSource

HOST = "http://jira.example.com"


def _with_omnifocus(settings: JofsyncSettings, **kwargs) -> JofsyncSettings:
    return settings.model_copy(update={"omnifocus": OmniFocusSettings(**kwargs)})


def _link(store: InMemoryTaskStore, issue: Issue, **kwargs):
    name, note = encode(issue, HOST)
    return store.add(name, note, **kwargs)


class TestDecide:
    def test_resolved_completes(self) -> None:
        issue = Issue(id="OPS-1", summary="s", resolution="Done", assignee="alice")
        assert decide(issue, "alice") is Action.COMPLETE

    def test_resolved_completes_even_when_reassigned(self) -> None:
        issue = Issue(id="OPS-1", summary="s", resolution="Done", assignee="bob")
        assert decide(issue, "alice") is Action.COMPLETE

    def test_unassigned_deletes(self) -> None:
        assert decide(Issue(id="OPS-1", summary="s"), "alice") is Action.DELETE

    def test_other_assignee_deletes(self) -> None:
        assert decide(Issue(id="OPS-1", summary="s", assignee="bob"), "alice") is Action.DELETE

    def test_assignee_match_is_case_insensitive(self) -> None:
        assert decide(Issue(id="OPS-1", summary="s", assignee="Alice"), "ALICE") is Action.NONE


class TestScopes:
    def test_default_mode_uses_project(self, settings: JofsyncSettings, source, store) -> None:
        reconciler = Reconciler(source, store, settings)
        assert reconciler.search_scope() == Scope.project("Jira")
        assert reconciler.create_scope() == Scope.project("Jira")

    def test_inbox_mode(self, settings: JofsyncSettings, source, store) -> None:
        reconciler = Reconciler(source, store, _with_omnifocus(settings, inbox=True))
        assert reconciler.search_scope() == Scope.inbox()
        assert reconciler.create_scope() == Scope.inbox()

    def test_newproj_mode_searches_everything(self, settings: JofsyncSettings, source, store) -> None:
        reconciler = Reconciler(source, store, _with_omnifocus(settings, newproj=True, folder="Work"))
        assert reconciler.search_scope() == Scope.all_tasks()
        assert reconciler.create_scope() == Scope.folder("Work")

    def test_inbox_wins_over_newproj(self, settings: JofsyncSettings, source, store) -> None:
        reconciler = Reconciler(source, store, _with_omnifocus(settings, inbox=True, newproj=True))
        assert reconciler.search_scope() == Scope.inbox()


class TestCreatePass:
    def test_creates_task_for_new_issue(self, settings, source: FakeIssueSource, store: InMemoryTaskStore) -> None:
        source.put(Issue(id="OPS-1", summary="Fix disk", assignee="alice"))
        report = SyncReport()
        Reconciler(source, store, settings).create_pass(report)

        assert store.names() == ["OPS-1: Fix disk"]
        assert report.created == ["OPS-1"]
        assert source.searches == [settings.jira.filter]

    def test_request_properties(self, settings, source: FakeIssueSource, store: InMemoryTaskStore) -> None:
        source.put(Issue(id="OPS-1", summary="Fix disk", description="full", due_date=date(2024, 5, 31)))
        Reconciler(source, store, settings).create_pass(SyncReport())

        [request] = store.created
        assert request.note == "http://jira.example.com/browse/OPS-1\n\nfull"
        assert request.project == "Jira"
        assert request.context == "Office"
        assert request.flagged is True
        assert request.due_date == date(2024, 5, 31)

    def test_second_run_creates_nothing(self, settings, source: FakeIssueSource, store: InMemoryTaskStore) -> None:
        source.put(Issue(id="OPS-1", summary="Fix disk", assignee="alice"))
        source.put(Issue(id="OPS-2", summary="Rotate keys", assignee="alice"))
        reconciler = Reconciler(source, store, settings)

        reconciler.create_pass(SyncReport())
        second = SyncReport()
        reconciler.create_pass(second)

        assert second.created == []
        assert sorted(second.skipped) == ["OPS-1", "OPS-2"]
        assert len(store.tasks) == 2

    def test_existing_task_outside_project_does_not_count(self, settings, source, store: InMemoryTaskStore) -> None:
        source.put(Issue(id="OPS-1", summary="Fix disk"))
        store.add("OPS-1: Fix disk", container="project:Elsewhere")
        report = SyncReport()
        Reconciler(source, store, settings).create_pass(report)
        assert report.created == ["OPS-1"]

    def test_newproj_mode_finds_task_anywhere(self, settings, source, store: InMemoryTaskStore) -> None:
        source.put(Issue(id="OPS-1", summary="Fix disk"))
        store.add("OPS-1: Fix disk", container="project:Elsewhere")
        report = SyncReport()
        Reconciler(source, store, _with_omnifocus(settings, newproj=True)).create_pass(report)
        assert report.created == []
        assert report.skipped == ["OPS-1"]

    def test_newproj_mode_creates_in_folder(self, settings, source, store: InMemoryTaskStore) -> None:
        source.put(Issue(id="OPS-1", summary="Fix disk"))
        Reconciler(source, store, _with_omnifocus(settings, newproj=True, folder="Jira")).create_pass(SyncReport())
        [(task, container)] = store.tasks.values()
        assert container == "folder:Jira"
        assert store.requests[task.id].project is None

    def test_inbox_mode_creates_in_inbox(self, settings, source, store: InMemoryTaskStore) -> None:
        source.put(Issue(id="OPS-1", summary="Fix disk"))
        Reconciler(source, store, _with_omnifocus(settings, inbox=True)).create_pass(SyncReport())
        [(_, container)] = store.tasks.values()
        assert container == "inbox"

    def test_failure_on_one_issue_does_not_stop_the_rest(self, settings, source, store: InMemoryTaskStore) -> None:
        source.put(Issue(id="OPS-1", summary="Fix disk"))
        source.put(Issue(id="OPS-2", summary="Rotate keys"))
        store.contexts.clear()  # every create now fails on the missing context
        report = SyncReport()
        Reconciler(source, store, settings).create_pass(report)

        assert [f.item for f in report.failures] == ["OPS-1", "OPS-2"]
        assert all(f.stage == "create" for f in report.failures)
        assert "context Office" in report.failures[0].error

    def test_every_issue_is_processed(self, settings, source, store: InMemoryTaskStore) -> None:
        for n in range(1, 6):
            source.put(Issue(id=f"OPS-{n}", summary=f"Issue {n}"))
        report = SyncReport()
        Reconciler(source, store, settings).create_pass(report)
        assert len(report.created) == 5

    def test_search_failure_propagates(self, settings, store) -> None:
        class FailingSource(FakeIssueSource):
            def search(self, jql: str) -> list[Issue]:
                raise QueryError("Unsuccessful HTTP response code 500", hostname="jira.example.com", status_code=500)

        with pytest.raises(QueryError):
            Reconciler(FailingSource(), store, settings).create_pass(SyncReport())


class TestCleanupPass:
    def test_resolved_issue_completes_task(self, settings, source: FakeIssueSource, store) -> None:
        issue = Issue(id="OPS-1", summary="Fix disk", resolution="Done", assignee="alice")
        source.put(issue)
        task = _link(store, issue)
        report = SyncReport()
        Reconciler(source, store, settings).cleanup_pass(report)

        assert store.get(task.id).completed
        assert store.deleted == []
        assert report.completed == ["OPS-1"]

    def test_reassigned_issue_deletes_task(self, settings, source: FakeIssueSource, store) -> None:
        issue = Issue(id="OPS-1", summary="Fix disk", assignee="bob")
        source.put(issue)
        task = _link(store, issue)
        report = SyncReport()
        Reconciler(source, store, settings).cleanup_pass(report)

        assert store.get(task.id) is None
        assert report.deleted == ["OPS-1"]

    def test_unassigned_issue_deletes_task(self, settings, source: FakeIssueSource, store) -> None:
        issue = Issue(id="OPS-1", summary="Fix disk")
        source.put(issue)
        task = _link(store, issue)
        Reconciler(source, store, settings).cleanup_pass(SyncReport())
        assert store.get(task.id) is None

    def test_still_mine_is_left_alone(self, settings, source: FakeIssueSource, store) -> None:
        issue = Issue(id="OPS-1", summary="Fix disk", assignee="ALICE")
        source.put(issue)
        task = _link(store, issue)
        report = SyncReport()
        Reconciler(source, store, settings).cleanup_pass(report)

        assert store.get(task.id) == task
        assert report.completed == report.deleted == []

    def test_other_host_note_is_untouched(self, settings, source: FakeIssueSource, store) -> None:
        task = store.add("OPS-1: Fix disk", "http://other-host/browse/OPS-1\n\n")
        Reconciler(source, store, settings).cleanup_pass(SyncReport())

        assert store.get(task.id) == task
        assert source.fetches == []

    def test_completed_tasks_are_not_fetched(self, settings, source: FakeIssueSource, store) -> None:
        issue = Issue(id="OPS-1", summary="Fix disk", assignee="bob")
        source.put(issue)
        task = _link(store, issue, completed=True)
        Reconciler(source, store, settings).cleanup_pass(SyncReport())

        assert source.fetches == []
        assert store.get(task.id) is not None

    def test_tasks_without_notes_are_ignored(self, settings, source: FakeIssueSource, store) -> None:
        store.add("Buy milk")
        Reconciler(source, store, settings).cleanup_pass(SyncReport())
        assert source.fetches == []

    def test_lookup_failure_skips_only_that_task(self, settings, source: FakeIssueSource, store) -> None:
        gone = store.add("OPS-404: Gone", f"{HOST}/browse/OPS-404\n\n")
        done = Issue(id="OPS-2", summary="Done", resolution="Fixed", assignee="alice")
        source.put(done)
        done_task = _link(store, done)
        report = SyncReport()
        Reconciler(source, store, settings).cleanup_pass(report)

        assert store.get(gone.id) == gone
        assert store.get(done_task.id).completed
        assert [(f.item, f.stage) for f in report.failures] == [("OPS-404", "cleanup")]

    def test_unreadable_lookup_reply_skips_only_that_task(self, settings, store, httpx_mock: HTTPXMock) -> None:
        broken = _link(store, Issue(id="OPS-1", summary="Fix disk", assignee="alice"))
        done_task = _link(store, Issue(id="OPS-2", summary="Rotate keys", assignee="alice"))
        httpx_mock.add_response(url=re.compile(rf"{HOST}/rest/api/2/issue/OPS-1(\?.*)?$"), text="<html>login</html>")
        httpx_mock.add_response(
            url=re.compile(rf"{HOST}/rest/api/2/issue/OPS-2(\?.*)?$"),
            json={"key": "OPS-2", "fields": {"summary": "Rotate keys", "resolution": {"name": "Done"}}},
        )
        report = SyncReport()
        with JiraSource(settings.jira) as jira:
            Reconciler(jira, store, settings).cleanup_pass(report)

        assert store.get(broken.id) == broken
        assert store.get(done_task.id).completed
        assert report.completed == ["OPS-2"]
        assert [(f.item, f.stage) for f in report.failures] == [("OPS-1", "cleanup")]

    def test_store_failure_is_recorded(self, settings, source: FakeIssueSource) -> None:
        class BrokenStore(InMemoryTaskStore):
            def delete(self, task) -> None:
                raise TaskStoreError("osascript failed (1)")

        store = BrokenStore()
        issue = Issue(id="OPS-1", summary="Fix disk", assignee="bob")
        source.put(issue)
        _link(store, issue)
        report = SyncReport()
        Reconciler(source, store, settings).cleanup_pass(report)

        assert report.deleted == []
        assert report.failures[0].error == "osascript failed (1)"


class TestRun:
    def test_scenarios_end_to_end(self, settings, source: FakeIssueSource, store: InMemoryTaskStore) -> None:
        reconciler = Reconciler(source, store, settings)

        # A: new issue assigned to me gets a task
        source.put(Issue(id="OPS-1", summary="Fix disk", assignee="alice"))
        report = reconciler.run()
        assert report.created == ["OPS-1"]
        assert store.names() == ["OPS-1: Fix disk"]
        [task_id] = store.tasks

        # B: resolved, so the task is completed, not deleted
        source.put(Issue(id="OPS-1", summary="Fix disk", assignee="alice", resolution="Done"))
        report = reconciler.run()
        assert report.completed == ["OPS-1"]
        assert store.get(task_id).completed

    def test_reassignment_then_reassign_back(self, settings, source: FakeIssueSource, store) -> None:
        reconciler = Reconciler(source, store, settings)
        source.put(Issue(id="OPS-1", summary="Fix disk", assignee="alice"))
        reconciler.run()

        # C: reassigned to bob
        source.issues.clear()
        source.put(Issue(id="OPS-1", summary="Fix disk", assignee="bob"))
        report = reconciler.run()
        assert report.deleted == ["OPS-1"]
        assert store.tasks == {}

        source.put(Issue(id="OPS-1", summary="Fix disk", assignee="alice"))
        report = reconciler.run()
        assert report.created == ["OPS-1"]
        assert store.names() == ["OPS-1: Fix disk"]
