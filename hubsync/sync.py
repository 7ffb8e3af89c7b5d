# hubsync/sync.py
"""
One sync run: Security Hub findings in, Jira tickets opened and closed.

- Listing failures (AWS or Jira) propagate and abort the run.
- Each close and create is isolated: a failure is logged, counted in the
  SyncResult and the run moves on to the next item.
"""

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Dict, List, Optional

from hubsync.closer import TicketCloser
from hubsync.config import SECURITY_HUB_LABEL, SEVERITY_TO_PRIORITY, SyncConfig
from hubsync.fingerprint import encode_ticket_body
from hubsync.jira_client import TrackerError
from hubsync.models import Finding, SyncPlan, SyncResult, SyncUpdate, Ticket
from hubsync.reconcile import reconcile

logger = logging.getLogger(__name__)

SUMMARY_PREFIX = "SecurityHub Finding - "
MAX_SUMMARY_LENGTH = 255
RESOLVED_PREFIX = "Resolved"


def severity_to_priority(severity: str) -> str:
    try:
        return SEVERITY_TO_PRIORITY[severity]
    except KeyError:
        raise ValueError(f"Invalid severity: {severity}") from None


def resolved_comment(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"As of {today.strftime('%a %b %d %Y')}, this Security Hub finding has been marked resolved"


def relabel_tenable(finding: Finding) -> Finding:
    """
    Tenable findings arrive as product 'Default'; label them with the company name instead.
    """
    if "default" in finding.product_name.lower() and "tenable" in finding.company_name.lower():
        return replace(finding, product_name=finding.company_name)
    return finding


class SecurityHubJiraSync:
    def __init__(self, config: SyncConfig, security_hub, jira, closer: Optional[TicketCloser] = None,
                 findings: Optional[List[Finding]] = None):
        """
        `findings`, when given, replaces the live Security Hub query (offline mode).
        """
        self.config = config
        self.security_hub = security_hub
        self.jira = jira
        self.closer = closer or TicketCloser(jira, config.transition_map)
        self.offline_findings = findings

    # --- Run ---------------------------------------------------------------

    def run(self) -> SyncResult:
        account_id = self.config.account_id or self.security_hub.get_account_id()
        identifying_labels = [account_id, self.config.region]

        tickets = self.jira.search_open_tickets(identifying_labels)
        if self.offline_findings is not None:
            findings = list(self.offline_findings)
        else:
            findings = self.security_hub.list_active_findings()
        findings = [relabel_tenable(f) for f in findings]

        plan = reconcile(tickets, findings, consolidate=self.config.consolidate)

        result = SyncResult()
        self.close_resolved_tickets(plan, result)
        self.create_new_tickets(plan, identifying_labels, result)
        logger.info(
            "Sync complete: %d created, %d closed, %d resolved, %d create errors, %d close errors, %d link errors",
            result.created, result.closed, result.resolved, result.create_errors, result.close_errors, result.link_errors,
        )
        return result

    # --- Closing -----------------------------------------------------------

    def close_resolved_tickets(self, plan: SyncPlan, result: SyncResult) -> None:
        if not self.config.auto_close:
            logger.info("Skipping auto closing...")
            for ticket in plan.to_close:
                self._mark_resolved(ticket, result)
            return
        for ticket in plan.to_close:
            self._close_ticket(ticket, result)

    def _close_ticket(self, ticket: Ticket, result: SyncResult) -> None:
        if self.config.dry_run:
            logger.info("[Dry Run] Would close issue %s", ticket.key)
        else:
            outcome = self.closer.close(ticket.key)
            if not outcome.ok:
                result.close_errors += 1
                return
        try:
            self.jira.add_comment(ticket.id, resolved_comment())
        except TrackerError as e:
            logger.warning("Closed %s but could not comment: %s", ticket.key, e)
        result.updates.append(SyncUpdate("closed", self._web_url(ticket), ticket.summary))

    def _mark_resolved(self, ticket: Ticket, result: SyncResult) -> None:
        if RESOLVED_PREFIX in ticket.summary:
            return
        try:
            self.jira.update_ticket_title(ticket.id, f"{RESOLVED_PREFIX} {ticket.summary}")
            self.jira.add_comment(ticket.id, resolved_comment())
        except TrackerError as e:
            logger.warning("Title of issue %s is not changed: %s", ticket.key, e)
            result.close_errors += 1
            return
        result.updates.append(SyncUpdate("resolved", self._web_url(ticket), f"{RESOLVED_PREFIX} {ticket.summary}"))

    def _web_url(self, ticket: Ticket) -> str:
        return ticket.web_url or f"{self.config.jira_base_uri}/browse/{ticket.key}"

    # --- Creating ----------------------------------------------------------

    def build_labels(self, finding: Finding, identifying_labels: List[str]) -> List[str]:
        labels = [
            SECURITY_HUB_LABEL,
            finding.severity,
            finding.account_alias,
            finding.product_name.strip().replace(" ", ""),
        ] + list(identifying_labels) + list(self.config.jira_add_labels)
        # Jira rejects empty labels and labels containing spaces.
        return [l.replace(" ", "") for l in labels if l and l.strip()]

    def build_issue_fields(self, finding: Finding, identifying_labels: List[str]) -> Dict[str, Any]:
        if not finding.severity:
            raise ValueError(f"Severity must be defined in Security Hub finding: {finding.title}")
        summary = f"{SUMMARY_PREFIX}{finding.title}"[:MAX_SUMMARY_LENGTH].replace("\n", "")
        fields: Dict[str, Any] = {
            "summary": summary,
            "description": encode_ticket_body(finding),
            "issuetype": {"name": "Task"},
            "labels": self.build_labels(finding, identifying_labels),
            "priority": {"name": severity_to_priority(finding.severity)},
        }
        fields.update(self.config.jira_custom_fields)
        return fields

    def create_new_tickets(self, plan: SyncPlan, identifying_labels: List[str], result: SyncResult) -> None:
        for finding in plan.to_create:
            try:
                fields = self.build_issue_fields(finding, identifying_labels)
                ticket = self.jira.create_ticket(fields)
            except (TrackerError, ValueError) as e:
                logger.warning("Error creating Jira issue for finding %r, moving forward: %s", finding.title, e)
                result.create_errors += 1
                continue
            result.updates.append(SyncUpdate("created", self._web_url(ticket), fields["summary"]))
            if self.config.jira_link_id:
                self._link(ticket, result)

    def _link(self, ticket: Ticket, result: SyncResult) -> None:
        try:
            self.jira.link_issues(
                ticket.key, self.config.jira_link_id,
                self.config.jira_link_type, self.config.jira_link_direction,
            )
        except TrackerError as e:
            logger.warning("Error linking %s to %s: %s", ticket.key, self.config.jira_link_id, e)
            result.link_errors += 1
