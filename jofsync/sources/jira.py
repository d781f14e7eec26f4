"""Jira REST API v2 issue source."""

import logging
import re

import httpx
from pydantic import BaseModel

from jofsync.errors import AuthError, IssueLookupError, QueryError
from jofsync.models import Issue
from jofsync.settings import JiraSettings
from jofsync.sources.base import IssueSource

logger = logging.getLogger(__name__)

SEARCH_PATH = "/rest/api/2/search"
SESSION_PATH = "/rest/auth/1/session"
ISSUE_PATH = "/rest/api/2/issue"

FIELDS = "summary,description,duedate,resolution,assignee"
PAGE_SIZE = 50

ISSUE_KEY_RE = re.compile(r"^[A-Z][A-Z0-9_]*-\d+$")


class SessionToken(BaseModel):
    """Cookie returned by the session login, reused for the rest of the run."""

    name: str
    value: str


class JiraSource(IssueSource):
    def __init__(
        self,
        settings: JiraSettings,
        client: httpx.Client | None = None,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._settings = settings
        self._hostname = settings.hostname
        self._host = httpx.URL(settings.hostname).host
        self._page_size = page_size
        self._client = client or httpx.Client(timeout=30)
        self.session: SessionToken | None = None

    def __enter__(self) -> "JiraSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    def login(self) -> SessionToken:
        """Open a cookie session. Only used with auth_method = cookie."""
        url = f"{self._hostname}{SESSION_PATH}"
        body = {
            "username": self._settings.username,
            "password": self._settings.password.get_secret_value(),
        }
        logger.debug("opening session at %s", url)
        try:
            response = self._client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise AuthError(f"Cookie-Auth request to {self._host} failed: {exc}", hostname=self._host) from exc
        if not response.is_success:
            raise AuthError(
                f"Unsuccessful Cookie-Auth: HTTP response code {response.status_code} from {self._host}",
                hostname=self._host,
                status_code=response.status_code,
            )
        try:
            session = response.json().get("session") or {}
        except (ValueError, AttributeError):
            session = {}
        if not session.get("name") or not session.get("value"):
            raise AuthError(
                f"Cookie-Auth response from {self._host} carried no session",
                hostname=self._host,
                status_code=response.status_code,
            )
        self.session = SessionToken(name=session["name"], value=session["value"])
        logger.info("Connected successfully to %s using Cookie-Auth", self._host)
        return self.session

    def _auth_kwargs(self) -> dict:
        if self._settings.auth_method == "cookie":
            session = self.session or self.login()
            return {"headers": {"Cookie": f"{session.name}={session.value}"}}
        return {"auth": (self._settings.username, self._settings.password.get_secret_value())}

    def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        return self._client.get(f"{self._hostname}{path}", params=params or {}, **self._auth_kwargs())

    # ------------------------------------------------------------------
    # parsing
    # ------------------------------------------------------------------

    def _issue_from_node(self, node: dict) -> Issue:
        fields = node.get("fields") or {}
        resolution = fields.get("resolution")
        assignee = fields.get("assignee")
        return Issue(
            id=node["key"],
            summary=fields.get("summary") or "",
            description=fields.get("description"),
            due_date=fields.get("duedate"),
            # Jira sends the resolution as an object; only its presence matters
            resolution=(resolution.get("name") or "resolved") if isinstance(resolution, dict) else resolution,
            # Jira Cloud accounts may have no user name
            assignee=(assignee.get("name") or assignee.get("emailAddress")) if assignee else None,
        )

    # ------------------------------------------------------------------
    # IssueSource
    # ------------------------------------------------------------------

    def search(self, jql: str) -> list[Issue]:
        issues: list[Issue] = []
        start_at = 0
        while True:
            params = {"jql": jql, "startAt": start_at, "maxResults": self._page_size, "fields": FIELDS}
            logger.debug("searching %s (startAt=%d)", self._host, start_at)
            try:
                response = self._get(SEARCH_PATH, params)
            except httpx.HTTPError as exc:
                raise QueryError(f"Search request to {self._host} failed: {exc}", hostname=self._host) from exc
            if not response.is_success:
                hint = " Check the username and password." if response.status_code in (401, 403) else ""
                raise QueryError(
                    f"Unsuccessful HTTP response code {response.status_code} from {self._host}.{hint}",
                    hostname=self._host,
                    status_code=response.status_code,
                )

            try:
                data = response.json()
                nodes = data.get("issues") or []
                issues.extend(self._issue_from_node(n) for n in nodes)
            except (ValueError, KeyError, AttributeError) as exc:
                raise QueryError(
                    f"Unreadable search response from {self._host}: {exc}",
                    hostname=self._host,
                    status_code=response.status_code,
                ) from exc
            start_at += len(nodes)
            if not nodes or start_at >= data.get("total", 0):
                break

        logger.info("Connected successfully to %s, %d issue(s) match the filter", self._host, len(issues))
        return issues

    def fetch(self, issue_id: str) -> Issue:
        if not issue_id.strip():
            raise IssueLookupError("Empty issue id", hostname=self._host)
        if not ISSUE_KEY_RE.match(issue_id):
            raise IssueLookupError(f"Malformed issue id {issue_id!r}", hostname=self._host)
        try:
            response = self._get(f"{ISSUE_PATH}/{issue_id}", {"fields": FIELDS})
        except httpx.HTTPError as exc:
            raise IssueLookupError(f"Lookup of {issue_id} on {self._host} failed: {exc}", hostname=self._host) from exc
        if not response.is_success:
            raise IssueLookupError(
                f"Unsuccessful response code {response.status_code} for issue {issue_id}",
                hostname=self._host,
                status_code=response.status_code,
            )
        try:
            return self._issue_from_node(response.json())
        except (ValueError, KeyError, AttributeError) as exc:
            raise IssueLookupError(
                f"Unreadable response for issue {issue_id} from {self._host}: {exc}",
                hostname=self._host,
                status_code=response.status_code,
            ) from exc
