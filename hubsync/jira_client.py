# hubsync/jira_client.py
"""
Thin Jira REST (v2) client.

- One requests.Session with bearer-token auth for the whole run.
- Every HTTP or decoding failure is re-raised as TrackerError.
- In dry-run mode mutating calls only log what they would do.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import requests

from hubsync.config import JIRA_PAGE_SIZE, JIRA_TIMEOUT_SECONDS, SECURITY_HUB_LABEL
from hubsync.models import Ticket, Transition

logger = logging.getLogger(__name__)

_ACCOUNT_LABEL = re.compile(r"labels = '[0-9]{12}'")


class TrackerError(Exception):
    """Raised when a Jira call fails."""


def _label_clause(label: str) -> str:
    return f"labels = '{label}'"


def _description_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def ticket_from_issue(issue: Dict[str, Any], base_uri: str = "") -> Ticket:
    """
    Build a Ticket snapshot from a Jira issue JSON object.
    """
    fields = issue.get("fields") or {}
    status = (fields.get("status") or {}).get("name", "")
    key = issue.get("key", "")
    return Ticket(
        id=str(issue.get("id", "")),
        key=key,
        summary=fields.get("summary") or "",
        description=_description_text(fields.get("description")),
        status=status,
        web_url=f"{base_uri}/browse/{key}" if base_uri and key else "",
    )


class JiraClient:
    def __init__(
        self,
        base_uri: str,
        token: str,
        project_key: str,
        closed_statuses: Optional[List[str]] = None,
        assignee: Optional[str] = None,
        dry_run: bool = False,
        session: Optional[requests.Session] = None,
        timeout: int = JIRA_TIMEOUT_SECONDS,
    ):
        self.base_uri = base_uri.rstrip("/")
        self.project_key = project_key
        self.closed_statuses = closed_statuses or ["Done"]
        self.assignee = assignee
        self.dry_run = dry_run
        self.timeout = timeout
        self._dry_run_counter = 0
        self._current_user: Optional[Dict[str, Any]] = None
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    # --- HTTP plumbing -----------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_uri}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise TrackerError(f"{method} {path} failed: {e}") from e
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise TrackerError(f"{method} {path} returned invalid JSON") from e

    # --- Queries -----------------------------------------------------------

    def build_open_tickets_query(self, identifying_labels: List[str]) -> str:
        """
        JQL for open Security Hub tickets of one account and region.

        Refuses queries missing the security-hub label or a 12-digit account label,
        since a broader query could close unrelated tickets.
        """
        clauses = [_label_clause(l) for l in list(identifying_labels) + [SECURITY_HUB_LABEL]]
        clauses.append(f"project = '{self.project_key}'")
        quoted = "','".join(self.closed_statuses)
        clauses.append(f"status not in ('{quoted}')")
        query = " AND ".join(clauses)
        if _label_clause(SECURITY_HUB_LABEL) not in query:
            raise TrackerError("Query does not include the 'security-hub' label and is too broad; refusing to continue")
        if not _ACCOUNT_LABEL.search(query):
            raise TrackerError("Query does not include an AWS account id label and is too broad; refusing to continue")
        return query

    def search_open_tickets(self, identifying_labels: List[str]) -> List[Ticket]:
        """
        Return every open ticket for the labels, following startAt pagination.
        """
        jql = self.build_open_tickets_query(identifying_labels)
        logger.info("Searching Jira: %s", jql)
        tickets: List[Ticket] = []
        start_at = 0
        while True:
            page = self._request(
                "POST",
                "/rest/api/2/search",
                json={"jql": jql, "startAt": start_at, "maxResults": JIRA_PAGE_SIZE, "fields": ["*all"]},
            ) or {}
            issues = page.get("issues") or []
            tickets.extend(ticket_from_issue(i, self.base_uri) for i in issues)
            start_at += len(issues)
            if not issues or start_at >= int(page.get("total", 0)):
                break
        logger.info("Found %d open Jira tickets", len(tickets))
        return tickets

    def get_status(self, key: str) -> str:
        issue = self._request("GET", f"/rest/api/2/issue/{key}", params={"fields": "status"}) or {}
        return ((issue.get("fields") or {}).get("status") or {}).get("name", "")

    def get_transitions(self, key: str) -> List[Transition]:
        data = self._request("GET", f"/rest/api/2/issue/{key}/transitions") or {}
        return [Transition(id=str(t.get("id", "")), name=t.get("name", "")) for t in data.get("transitions", [])]

    def get_current_user(self) -> Dict[str, Any]:
        if self._current_user is None:
            self._current_user = self._request("GET", "/rest/api/2/myself") or {}
        return self._current_user

    # --- Mutations ---------------------------------------------------------

    def apply_transition(self, key: str, transition_id: str) -> None:
        if self.dry_run:
            logger.info("[Dry Run] Would transition issue %s with transition %s", key, transition_id)
            return
        self._request("POST", f"/rest/api/2/issue/{key}/transitions", json={"transition": {"id": transition_id}})
        logger.info("Issue %s transitioned successfully", key)

    def remove_current_user_as_watcher(self, key: str) -> None:
        """
        Creating or commenting makes the bot a watcher; undo that.
        """
        user = self.get_current_user()
        username = user.get("name", "")
        if self.dry_run:
            logger.info("[Dry Run] Would remove %s from %s as watcher", username, key)
            return
        self._request("DELETE", f"/rest/api/2/issue/{key}/watchers", params={"username": username})

    def create_ticket(self, fields: Dict[str, Any]) -> Ticket:
        fields = dict(fields)
        fields["project"] = {"key": self.project_key}
        if self.assignee:
            fields["assignee"] = {"name": self.assignee}
        if self.dry_run:
            self._dry_run_counter += 1
            key = f"DRYRUN-KEY-{self._dry_run_counter}"
            logger.info("[Dry Run] Would create a new issue: %s", fields.get("summary"))
            return Ticket(
                id=f"dryrun-id-{self._dry_run_counter}",
                key=key,
                summary=fields.get("summary", ""),
                description=fields.get("description", ""),
                web_url=f"{self.base_uri}/browse/{key}",
            )
        created = self._request("POST", "/rest/api/2/issue", json={"fields": fields}) or {}
        if not created.get("key"):
            raise TrackerError("Jira did not return a key for the created issue")
        ticket = Ticket(
            id=str(created.get("id", "")),
            key=created["key"],
            summary=fields.get("summary", ""),
            description=fields.get("description", ""),
            web_url=f"{self.base_uri}/browse/{created['key']}",
        )
        self.remove_current_user_as_watcher(ticket.key)
        return ticket

    def update_ticket_title(self, ticket_id: str, summary: str) -> None:
        if self.dry_run:
            logger.info("[Dry Run] Would retitle issue %s to %r", ticket_id, summary)
            return
        self._request("PUT", f"/rest/api/2/issue/{ticket_id}", json={"fields": {"summary": summary}})

    def add_comment(self, ticket_id: str, body: str) -> None:
        if self.dry_run:
            logger.info("[Dry Run] Would add comment to issue %s: %s", ticket_id, body)
            return
        self._request("POST", f"/rest/api/2/issue/{ticket_id}/comment", json={"body": body})
        self.remove_current_user_as_watcher(ticket_id)

    def link_issues(self, key: str, target_key: str, link_type: str = "Relates", direction: str = "inward") -> None:
        """
        Link `key` to `target_key`. With direction 'inward' the new issue is the inward side.
        """
        if direction == "inward":
            payload = {"type": {"name": link_type}, "inwardIssue": {"key": key}, "outwardIssue": {"key": target_key}}
        else:
            payload = {"type": {"name": link_type}, "inwardIssue": {"key": target_key}, "outwardIssue": {"key": key}}
        if self.dry_run:
            logger.info("[Dry Run] Would link issue %s to %s (%s, %s)", key, target_key, link_type, direction)
            return
        self._request("POST", "/rest/api/2/issueLink", json=payload)
