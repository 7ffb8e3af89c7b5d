# hubsync/reconcile.py
"""
Reconciliation of open Jira tickets against active Security Hub findings.

- reconcile() decides which tickets to close and which findings need tickets.
- A ticket stays open only while the exact variant it was opened for (title and
  full resource set) is still active.
- Optional consolidation merges same-title findings into one ticket.
"""

import json
import logging
from dataclasses import asdict, replace
from typing import Dict, List

from hubsync.fingerprint import decode_ticket
from hubsync.matcher import is_already_in_new, is_covered_by_any, is_fully_covered, matches
from hubsync.models import Finding, SyncPlan, Ticket

logger = logging.getLogger(__name__)


def consolidate_findings(findings: List[Finding]) -> List[Finding]:
    """
    Merge findings sharing a title into the first one seen, concatenating
    resource lists. Order of first appearance is kept; resources are not de-duplicated.
    """
    merged: List[Finding] = []
    index_by_title: Dict[str, int] = {}
    for finding in findings:
        i = index_by_title.get(finding.title)
        if i is None:
            index_by_title[finding.title] = len(merged)
            merged.append(finding)
        else:
            merged[i] = replace(merged[i], resources=merged[i].resources + finding.resources)
    return merged


def dedupe_findings(findings: List[Finding]) -> List[Finding]:
    """
    Drop structurally identical findings (same serialized content), keeping the first.
    """
    seen = set()
    unique: List[Finding] = []
    for finding in findings:
        key = json.dumps(asdict(finding), sort_keys=True)
        if key in seen:
            continue
        seen.add(key)
        unique.append(finding)
    return unique


def reconcile(tickets: List[Ticket], findings: List[Finding], consolidate: bool = False) -> SyncPlan:
    """
    Classify tickets into keep-open / close and findings into covered / new.

    - A ticket with no title-matching finding is closed.
    - A ticket whose matching findings are all different variants is closed too;
      those variants become creation candidates.
    - A finding becomes a candidate when no open ticket fully covers it and an
      equivalent candidate (same title family, same resource set) is not already queued.
    """
    fingerprints = [(t, decode_ticket(t)) for t in tickets]
    decoded = [fp for _, fp in fingerprints]
    plan = SyncPlan()

    for ticket, fp in fingerprints:
        matching = [f for f in findings if matches(fp, f)]
        if not matching:
            logger.debug("Ticket %s matches no active finding", ticket.key)
            plan.to_close.append(ticket)
            continue
        if not any(is_fully_covered(fp, f) for f in matching):
            logger.debug("Ticket %s: its finding variant is no longer active", ticket.key)
            plan.to_close.append(ticket)

    candidates: List[Finding] = []
    for finding in findings:
        if not finding.title:
            continue
        if is_covered_by_any(finding, decoded):
            continue
        if is_already_in_new(finding, candidates):
            continue
        candidates.append(finding)

    if consolidate:
        candidates = consolidate_findings(candidates)

    plan.to_create = dedupe_findings(candidates)
    logger.info(
        "Reconciled %d tickets against %d findings: %d to close, %d to create",
        len(tickets), len(findings), len(plan.to_close), len(plan.to_create),
    )
    return plan
