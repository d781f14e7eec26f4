"""Abstract base class for task stores."""

from abc import ABC, abstractmethod
from collections.abc import Iterator

from jofsync.models import Scope, Task, TaskRequest


class TaskStore(ABC):
    @abstractmethod
    def find_by_name(self, name: str, scope: Scope) -> Task | None: ...

    @abstractmethod
    def create(self, request: TaskRequest, scope: Scope) -> Task: ...

    @abstractmethod
    def complete(self, task: Task) -> None: ...

    @abstractmethod
    def delete(self, task: Task) -> None: ...

    @abstractmethod
    def all_linked_tasks(self) -> Iterator[Task]: ...
