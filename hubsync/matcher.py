# hubsync/matcher.py
"""
Identity matching between Jira tickets and Security Hub findings.

- Pure functions over snapshots; nothing here talks to AWS or Jira.
- A ticket is about a finding when the finding title appears in its body.
- A ticket covers a finding variant when, in addition, every resource id of the
  variant appears in its body.
"""

from typing import Iterable, List

from hubsync.fingerprint import Fingerprint, decode_ticket
from hubsync.models import Finding, Resource


def _fingerprint(ticket) -> Fingerprint:
    if isinstance(ticket, Fingerprint):
        return ticket
    return decode_ticket(ticket)


def matches(ticket, finding: Finding) -> bool:
    """
    True if the finding title is a substring of the ticket body.
    Accepts a Ticket or an already decoded Fingerprint.
    """
    return _fingerprint(ticket).mentions(finding.title)


def is_fully_covered(ticket, finding: Finding) -> bool:
    """
    True if the ticket matches the finding and mentions every resource id.
    A finding without resources is covered by any matching ticket.
    """
    fp = _fingerprint(ticket)
    return fp.mentions(finding.title) and fp.mentions_all(finding.resources)


def _ids_overlap(a: str, b: str) -> bool:
    return bool(a) and bool(b) and (a in b or b in a)


def same_resource_set(a: List[Resource], b: List[Resource]) -> bool:
    """
    Positional comparison: equal lengths, and each resource of `a` has some
    resource in `b` whose id contains or is contained in its own.

    Duplicates in `a` may all pair with one entry of `b`, so this is looser
    than set equality.
    """
    if len(a) != len(b):
        return False
    return all(any(_ids_overlap(ra.id, rb.id) for rb in b) for ra in a)


def is_already_in_new(finding: Finding, candidates: Iterable[Finding]) -> bool:
    """
    True if a candidate with a title containing this finding's title already
    carries the same resource set.
    """
    if not finding.title:
        return False
    return any(
        finding.title in c.title and same_resource_set(finding.resources, c.resources)
        for c in candidates
    )


def is_covered_by_any(finding: Finding, tickets: Iterable) -> bool:
    """
    True if any ticket (or decoded Fingerprint) fully covers the finding.
    """
    return any(is_fully_covered(t, finding) for t in tickets)
