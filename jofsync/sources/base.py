"""Abstract base class for issue sources."""

from abc import ABC, abstractmethod

from jofsync.models import Issue


class IssueSource(ABC):
    @abstractmethod
    def search(self, jql: str) -> list[Issue]: ...

    @abstractmethod
    def fetch(self, issue_id: str) -> Issue: ...
