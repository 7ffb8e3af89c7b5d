# tests/conftest.py
"""
Shared fixtures.

- FakeTracker is an in-memory Jira: a workflow graph per ticket plus records of
  every call the sync makes.
- aws_credentials keeps boto3/moto away from any real account.
"""

from typing import Dict, List, Optional, Tuple

import pytest

from hubsync.config import SyncConfig
from hubsync.jira_client import TrackerError
from hubsync.models import Finding, Resource, Ticket, Transition

# status -> [(transition id, transition name, target status)]
Workflow = Dict[str, List[Tuple[str, str, str]]]

SIMPLE_WORKFLOW: Workflow = {
    "To Do": [("11", "Start Progress", "In Progress"), ("21", "Done", "Done")],
    "In Progress": [("31", "Done", "Done")],
    "Done": [],
}


class FakeTracker:
    def __init__(self, tickets: Optional[List[Ticket]] = None, workflow: Optional[Workflow] = None):
        self.tickets = {t.key: t for t in (tickets or [])}
        self.workflow = workflow if workflow is not None else SIMPLE_WORKFLOW
        self.status = {t.key: t.status or "To Do" for t in (tickets or [])}
        self.applied: List[Tuple[str, str]] = []
        self.created: List[dict] = []
        self.comments: List[Tuple[str, str]] = []
        self.retitled: List[Tuple[str, str]] = []
        self.links: List[Tuple[str, str, str, str]] = []
        self.searched_labels: List[List[str]] = []
        self.fail_create_for: List[str] = []
        self.fail_link = False
        self.fail_transitions = False

    # search / read
    def search_open_tickets(self, labels):
        self.searched_labels.append(list(labels))
        return list(self.tickets.values())

    def get_status(self, key):
        return self.status[key]

    def get_transitions(self, key):
        if self.fail_transitions:
            raise TrackerError("GET transitions failed: 503")
        return [Transition(id=i, name=n) for i, n, _ in self.workflow.get(self.status[key], [])]

    # mutations
    def apply_transition(self, key, transition_id):
        for i, name, target in self.workflow.get(self.status[key], []):
            if i == transition_id:
                self.applied.append((key, name))
                self.status[key] = target
                return
        raise TrackerError(f"transition {transition_id} not valid from {self.status[key]}")

    def create_ticket(self, fields):
        if any(title in fields["summary"] for title in self.fail_create_for):
            raise TrackerError("POST /rest/api/2/issue failed: 400")
        self.created.append(fields)
        key = f"SEC-{100 + len(self.created)}"
        return Ticket(id=str(1000 + len(self.created)), key=key, summary=fields["summary"],
                      description=fields["description"], web_url=f"https://jira.example.com/browse/{key}")

    def add_comment(self, ticket_id, body):
        self.comments.append((ticket_id, body))

    def update_ticket_title(self, ticket_id, summary):
        self.retitled.append((ticket_id, summary))

    def link_issues(self, key, target_key, link_type="Relates", direction="inward"):
        if self.fail_link:
            raise TrackerError("POST /rest/api/2/issueLink failed: 404")
        self.links.append((key, target_key, link_type, direction))


class FakeSecurityHub:
    def __init__(self, findings: List[Finding], account_id: str = "123456789012"):
        self.findings = findings
        self.account_id = account_id
        self.listed = 0

    def get_account_id(self):
        return self.account_id

    def list_active_findings(self):
        self.listed += 1
        return list(self.findings)


def make_finding(title: str, *resource_ids: str, severity: str = "HIGH", **kwargs) -> Finding:
    return Finding(title=title, severity=severity, resources=[Resource(id=r) for r in resource_ids], **kwargs)


def make_ticket(key: str, body: str, summary: str = "", status: str = "To Do") -> Ticket:
    return Ticket(id=key.split("-")[-1], key=key, summary=summary or f"SecurityHub Finding - {key}",
                  description=body, status=status, web_url=f"https://jira.example.com/browse/{key}")


@pytest.fixture
def sync_config():
    return SyncConfig(jira_token="token", jira_project_key="SEC", jira_base_uri="https://jira.example.com")


@pytest.fixture
def aws_credentials(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
