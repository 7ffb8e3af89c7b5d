# hubsync/models.py
"""
Data models shared by the sync.

- Keep simple, serializable dataclasses for findings and tickets.
- Findings and tickets are snapshots: they are never mutated after being fetched.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

# A transition rule with this status applies from any status.
WILDCARD_STATUS = "*"


@dataclass
class Resource:
    """
    A cloud resource referenced by a finding. Only `id` matters for matching.
    """
    id: str = ""
    partition: Optional[str] = None
    region: Optional[str] = None
    type: Optional[str] = None


@dataclass
class Finding:
    """
    Represents a single active Security Hub finding.

    Fields:
    - title: de-facto primary key; findings with equal titles are one family
    - severity: Security Hub severity label (e.g., "HIGH")
    - resources: the variant's resource set
    - the remaining fields only shape the ticket body and labels
    """
    title: str
    severity: str = ""
    resources: List[Resource] = field(default_factory=list)
    id: str = ""
    description: str = ""
    account_id: str = ""
    account_alias: str = ""
    region: str = ""
    product_name: str = ""
    company_name: str = ""
    provider_name: str = ""
    provider_version: str = ""
    type: str = ""
    cve: str = ""
    standards_control_arn: str = ""
    remediation_text: str = ""
    remediation_url: str = ""


@dataclass
class Ticket:
    id: str
    key: str
    summary: str = ""
    description: str = ""
    status: str = ""
    web_url: str = ""


@dataclass
class Transition:
    id: str
    name: str


@dataclass
class TransitionRule:
    status: str
    transition_name: str

    @property
    def is_wildcard(self) -> bool:
        return self.status == WILDCARD_STATUS


class CloseStatus(Enum):
    CLOSED = "closed"
    ALREADY_TERMINAL = "already_terminal"
    FAILED = "failed"


@dataclass
class CloseOutcome:
    """
    Result of driving one ticket towards a terminal status. Never raised.
    """
    status: CloseStatus
    reason: str = ""
    applied: List[str] = field(default_factory=list)

    @classmethod
    def closed(cls, applied: List[str]) -> "CloseOutcome":
        return cls(CloseStatus.CLOSED, applied=list(applied))

    @classmethod
    def already_terminal(cls) -> "CloseOutcome":
        return cls(CloseStatus.ALREADY_TERMINAL)

    @classmethod
    def failed(cls, reason: str, applied: Optional[List[str]] = None) -> "CloseOutcome":
        return cls(CloseStatus.FAILED, reason=reason, applied=list(applied or []))

    @property
    def ok(self) -> bool:
        return self.status is not CloseStatus.FAILED


@dataclass
class SyncPlan:
    to_close: List[Ticket] = field(default_factory=list)
    to_create: List[Finding] = field(default_factory=list)


@dataclass
class SyncUpdate:
    action: str
    web_url: str
    summary: str


@dataclass
class SyncResult:
    """
    What a run did. `degraded` means it completed but some items failed.
    """
    updates: List[SyncUpdate] = field(default_factory=list)
    create_errors: int = 0
    close_errors: int = 0
    link_errors: int = 0

    @property
    def created(self) -> int:
        return sum(1 for u in self.updates if u.action == "created")

    @property
    def closed(self) -> int:
        return sum(1 for u in self.updates if u.action == "closed")

    @property
    def resolved(self) -> int:
        return sum(1 for u in self.updates if u.action == "resolved")

    @property
    def error_count(self) -> int:
        return self.create_errors + self.close_errors + self.link_errors

    @property
    def degraded(self) -> bool:
        return self.error_count > 0
