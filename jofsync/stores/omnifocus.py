"""OmniFocus task store, driven through JavaScript for Automation (osascript)."""

import json
import logging
import subprocess
import unicodedata
from collections.abc import Iterator
from typing import Any

from jofsync.codec import first_line
from jofsync.errors import CreateError, TaskStoreError
from jofsync.models import Scope, Task, TaskRequest
from jofsync.stores.base import TaskStore

logger = logging.getLogger(__name__)

APP_NAME = "OmniFocus"

# Every script gets one JSON argument and prints one JSON value.
# {"missing": "..."} means a named target does not exist.
_PRELUDE = r"""
function taskJSON(t) {
  return {id: t.id(), name: t.name(), note: t.note() || "", completed: t.completed(), flagged: t.flagged()};
}
function byName(collection, name) {
  const found = collection.whose({name: name})();
  return found.length ? found[0] : null;
}
function byId(doc, id) {
  const tasks = doc.flattenedTasks.whose({id: id})();
  if (tasks.length) return tasks[0];
  const projects = doc.flattenedProjects.whose({id: id})();
  return projects.length ? projects[0] : null;
}
"""

_LIST_SCOPE = _PRELUDE + r"""
function run(argv) {
  const args = JSON.parse(argv[0]);
  const doc = Application("OmniFocus").defaultDocument;
  let tasks;
  if (args.kind === "inbox") {
    tasks = doc.inboxTasks();
  } else if (args.kind === "all") {
    tasks = doc.flattenedTasks();
  } else {
    const project = byName(doc.flattenedProjects, args.name);
    if (!project) return JSON.stringify({missing: "project " + args.name});
    tasks = project.flattenedTasks();
  }
  return JSON.stringify(tasks.map(taskJSON));
}
"""

_LIST_NOTED = _PRELUDE + r"""
function run(argv) {
  const doc = Application("OmniFocus").defaultDocument;
  const tasks = doc.flattenedTasks().filter(t => (t.note() || "").length > 0);
  return JSON.stringify(tasks.map(taskJSON));
}
"""

_CREATE = _PRELUDE + r"""
function run(argv) {
  const args = JSON.parse(argv[0]);
  const app = Application("OmniFocus");
  const doc = app.defaultDocument;
  const props = {name: args.request.name, note: args.request.note, flagged: args.request.flagged};
  if (args.request.due_date) {
    const [y, m, d] = args.request.due_date.split("-").map(Number);
    props.dueDate = new Date(y, m - 1, d);
  }
  let tag = null;
  if (args.request.context) {
    tag = byName(doc.flattenedTags, args.request.context);
    if (!tag) return JSON.stringify({missing: "context " + args.request.context});
  }
  let item;
  if (args.kind === "inbox") {
    item = app.InboxTask(props);
    doc.inboxTasks.push(item);
  } else if (args.kind === "project") {
    const project = byName(doc.flattenedProjects, args.name);
    if (!project) return JSON.stringify({missing: "project " + args.name});
    item = app.Task(props);
    project.tasks.push(item);
  } else {
    const folder = byName(doc.flattenedFolders, args.name);
    if (!folder) return JSON.stringify({missing: "folder " + args.name});
    item = app.Project(props);
    folder.projects.push(item);
  }
  if (tag) app.add(tag, {to: item.tags});
  return JSON.stringify(taskJSON(item));
}
"""

_COMPLETE = _PRELUDE + r"""
function run(argv) {
  const args = JSON.parse(argv[0]);
  const app = Application("OmniFocus");
  const item = byId(app.defaultDocument, args.id);
  if (!item) return JSON.stringify({missing: "task " + args.id});
  if (!item.completed()) app.markComplete(item);
  return JSON.stringify(true);
}
"""

_DELETE = _PRELUDE + r"""
function run(argv) {
  const args = JSON.parse(argv[0]);
  const app = Application("OmniFocus");
  const item = byId(app.defaultDocument, args.id);
  if (!item) return JSON.stringify({missing: "task " + args.id});
  app.delete(item);
  return JSON.stringify(true);
}
"""


def normalize_name(name: str) -> str:
    return unicodedata.normalize("NFC", name)


class OmniFocusStore(TaskStore):
    def _run(self, script: str, payload: dict | None = None) -> Any:
        result = subprocess.run(
            ["osascript", "-l", "JavaScript", "-e", script, json.dumps(payload or {})],
            capture_output=True,
            text=True,
            encoding="utf-8",
        )
        if result.returncode != 0:
            raise TaskStoreError(f"osascript failed ({result.returncode}): {result.stderr.strip() or result.stdout.strip()}")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise TaskStoreError(f"Unreadable reply from {APP_NAME}: {result.stdout[:200]!r}") from exc

    def _tasks(self, scope: Scope) -> list[Task]:
        if scope.kind not in ("inbox", "all", "project"):
            raise ValueError(f"Cannot search in scope '{scope.kind}'")
        data = self._run(_LIST_SCOPE, scope.model_dump())
        if isinstance(data, dict) and "missing" in data:
            logger.warning("%s not found in %s", data["missing"], APP_NAME)
            return []
        return [Task(**node) for node in data]

    def find_by_name(self, name: str, scope: Scope) -> Task | None:
        wanted = normalize_name(name)
        for task in self._tasks(scope):
            if normalize_name(task.name) == wanted:
                return task
        return None

    def create(self, request: TaskRequest, scope: Scope) -> Task:
        if scope.kind not in ("inbox", "project", "folder"):
            raise ValueError(f"Cannot create in scope '{scope.kind}'")
        payload = {**scope.model_dump(), "request": request.model_dump(mode="json")}
        data = self._run(_CREATE, payload)
        if isinstance(data, dict) and "missing" in data:
            raise CreateError(f"Cannot create '{request.name}': {data['missing']} does not exist in {APP_NAME}")
        task = Task(**data)
        match scope.kind:
            case "inbox":
                logger.info("Created inbox task: %s", task.name)
            case "folder":
                logger.info("Created project in %s folder: %s", scope.name, task.name)
            case _:
                logger.info("Created task [%s] in project %s", task.name, scope.name)
        return task

    def complete(self, task: Task) -> None:
        if task.completed:
            return
        data = self._run(_COMPLETE, {"id": task.id})
        if isinstance(data, dict) and "missing" in data:
            raise TaskStoreError(f"Cannot complete '{task.name}': {data['missing']} no longer exists")

    def delete(self, task: Task) -> None:
        data = self._run(_DELETE, {"id": task.id})
        if isinstance(data, dict) and "missing" in data:
            raise TaskStoreError(f"Cannot delete '{task.name}': {data['missing']} no longer exists")

    def all_linked_tasks(self) -> Iterator[Task]:
        for node in self._run(_LIST_NOTED):
            task = Task(**node)
            if first_line(task.note):
                yield task
