# hubsync/config.py
"""
Central configuration and tunable constants.

- Defaults can be overridden by CLI args or environment variables (see main.py).
- Word lists used by the ticket closer live here so both closing paths share them.
- SyncConfig validates itself once, at construction time.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from hubsync.models import TransitionRule

DEFAULT_AWS_REGION = "us-east-1"
DEFAULT_SEVERITIES = "CRITICAL,HIGH,MEDIUM"
ALLOWED_SEVERITIES = ["INFORMATIONAL", "LOW", "MEDIUM", "HIGH", "CRITICAL"]

# Findings younger than this (milliseconds) are treated as ephemeral and skipped.
DEFAULT_NEW_ISSUE_DELAY_MS = 86400000
FINDINGS_PAGE_SIZE = 100

DEFAULT_JIRA_BASE_URI = "https://jiraent.cms.gov"
DEFAULT_JIRA_IGNORE_STATUSES = "Done, Closed, Resolved"
DEFAULT_JIRA_LINK_TYPE = "Relates"
DEFAULT_JIRA_LINK_DIRECTION = "inward"
JIRA_PAGE_SIZE = 50
JIRA_TIMEOUT_SECONDS = 30

SECURITY_HUB_LABEL = "security-hub"

# Closer vocabularies, compared lower-case.
DIRECT_DONE_TRANSITION = "done"
OPPOSED_TRANSITIONS = ["canceled", "backout", "rejected", "cancel", "reject", "block", "blocked"]
DONE_TRANSITIONS = ["done", "closed", "close", "complete", "completed", "deploy", "deployed"]
MAX_GREEDY_STEPS = 25

SEVERITY_TO_PRIORITY = {
    "INFORMATIONAL": "Lowest",
    "LOW": "Low",
    "MEDIUM": "Medium",
    "HIGH": "High",
    "CRITICAL": "Critical",
}


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Only the literal 'true' (any case) is truthy."""
    if value is None or value == "":
        return default
    return value.strip().lower() == "true"


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def validate_severities(value: str) -> List[str]:
    """
    Split a comma list of severity labels, upper-case them and reject unknown ones.
    """
    severities = [s.upper() for s in split_csv(value)]
    for severity in severities:
        if severity not in ALLOWED_SEVERITIES:
            raise ValueError(
                f"Invalid severity level detected: '{severity}'. "
                f"Allowed severities are: {', '.join(ALLOWED_SEVERITIES)}."
            )
    return severities


def parse_transition_map(value: Optional[str]) -> List[TransitionRule]:
    """
    Parse 'Status:Transition;Status:Transition' into TransitionRule objects.

    An empty value means no map: the closer then relies on the direct 'Done'
    transition and the greedy walk.
    """
    if not value or not value.strip():
        return []
    rules: List[TransitionRule] = []
    for raw_rule in value.split(";"):
        if not raw_rule.strip():
            continue
        parts = [p.strip().upper() for p in raw_rule.split(":")]
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(
                f"Invalid transition rule format: '{raw_rule}'. Expected format is 'Status:Transition'."
            )
        rules.append(TransitionRule(status=parts[0], transition_name=parts[1]))
    validate_transition_map(rules)
    return rules


def validate_transition_map(rules: List[TransitionRule]) -> None:
    if any(r.is_wildcard for r in rules) and len(rules) > 1:
        raise ValueError(
            "Invalid transition map: When using a wildcard transition ('*'), "
            "it must be the only transition in the map."
        )


def parse_custom_fields(value: Optional[str]) -> Dict[str, Any]:
    if not value:
        return {}
    try:
        fields = json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"Error parsing JSON string for custom Jira fields: {e.msg}") from e
    if not isinstance(fields, dict):
        raise ValueError("Custom Jira fields must be a JSON object")
    return fields


@dataclass
class SyncConfig:
    """
    Everything a sync run needs, resolved up front.

    Fields:
    - region / severities / new_issue_delay_ms / include_all_products / skip_products:
      which Security Hub findings are considered active
    - jira_*: where tickets live and how new ones are shaped
    - transition_map: optional status -> transition rules for closing tickets
    - consolidate: merge same-title findings into one ticket
    - auto_close: transition resolved tickets, otherwise only retitle them
    - dry_run: log mutations instead of performing them
    """
    jira_token: str
    jira_project_key: str
    region: str = DEFAULT_AWS_REGION
    severities: List[str] = field(default_factory=lambda: validate_severities(DEFAULT_SEVERITIES))
    new_issue_delay_ms: int = DEFAULT_NEW_ISSUE_DELAY_MS
    include_all_products: bool = False
    skip_products: List[str] = field(default_factory=list)
    jira_base_uri: str = DEFAULT_JIRA_BASE_URI
    jira_ignore_statuses: List[str] = field(default_factory=lambda: split_csv(DEFAULT_JIRA_IGNORE_STATUSES))
    jira_assignee: Optional[str] = None
    jira_add_labels: List[str] = field(default_factory=list)
    jira_custom_fields: Dict[str, Any] = field(default_factory=dict)
    jira_link_id: Optional[str] = None
    jira_link_type: str = DEFAULT_JIRA_LINK_TYPE
    jira_link_direction: str = DEFAULT_JIRA_LINK_DIRECTION
    transition_map: List[TransitionRule] = field(default_factory=list)
    consolidate: bool = False
    auto_close: bool = True
    dry_run: bool = False
    account_id: Optional[str] = None

    def __post_init__(self):
        if not self.jira_token:
            raise ValueError("A Jira token is required")
        if not self.jira_project_key:
            raise ValueError("A Jira project key is required")
        for severity in self.severities:
            if severity not in ALLOWED_SEVERITIES:
                raise ValueError(f"Invalid severity level detected: '{severity}'")
        if self.new_issue_delay_ms < 0:
            raise ValueError("new_issue_delay_ms must not be negative")
        validate_transition_map(self.transition_map)
        self.jira_base_uri = self.jira_base_uri.rstrip("/")
