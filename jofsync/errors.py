"""Exception hierarchy for sync runs."""


class SyncError(RuntimeError):
    pass


class ConfigError(SyncError):
    """A required setting is unset or a credential is missing."""


class TrackerError(SyncError):
    def __init__(self, message: str, *, hostname: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.hostname = hostname
        self.status_code = status_code


class AuthError(TrackerError):
    pass


class QueryError(TrackerError):
    pass


class IssueLookupError(TrackerError, LookupError):
    pass


class TaskStoreError(SyncError):
    pass


class CreateError(TaskStoreError):
    """The project, folder or context a new task should go into does not exist."""
