"""Task name and back-reference note for an issue, and the way back from a note to the issue id."""

from jofsync.models import Issue


def browse_prefix(hostname: str) -> str:
    return f"{hostname}/browse/"


def encode(issue: Issue, hostname: str) -> tuple[str, str]:
    """Return (name, note) for the task that mirrors issue.

    The first line of the note is the issue's browse URL; decode() relies on it.
    """
    name = f"{issue.id}: {issue.summary}"
    note = f"{browse_prefix(hostname)}{issue.id}\n\n{issue.description or ''}"
    return name, note


def first_line(note: str | None) -> str:
    lines = note.splitlines() if note else []
    return lines[0] if lines else ""


def decode(note: str | None, hostname: str) -> str | None:
    """Return the issue id a task note points back to, or None.

    Only an exact prefix match on the first line counts; a URL for another
    host, or the hostname appearing elsewhere in the note, does not.
    """
    line = first_line(note)
    prefix = browse_prefix(hostname)
    if not line.startswith(prefix):
        return None
    issue_id = line[len(prefix) :]
    return issue_id or None
