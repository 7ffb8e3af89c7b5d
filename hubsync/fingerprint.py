# hubsync/fingerprint.py
"""
Ticket body encoding and decoding.

Jira has no field linking a ticket back to a Security Hub finding, so the link
lives in the ticket text:
- encode_ticket_body writes the finding title and every resource id verbatim.
- decode_ticket reads a ticket back into a Fingerprint that answers
  "does this body mention X" by plain substring containment.
"""

import re
from dataclasses import dataclass
from typing import List
from urllib.parse import quote

from hubsync.models import Finding, Resource, Ticket

_AWS_REGION = re.compile(r"^[a-z]{2}-[a-z]+-\d+$")
_FALLBACK_REGION = "us-east-1"


@dataclass(frozen=True)
class Fingerprint:
    """
    Identity recovered from a ticket body; all matching is substring
    containment over `text`.
    """
    text: str

    def mentions(self, needle: str) -> bool:
        return bool(needle) and needle in self.text

    def mentions_all(self, resources: List[Resource]) -> bool:
        # an empty id is contained in any body
        return all((r.id or "") in self.text for r in resources)


def decode_ticket(ticket: Ticket) -> Fingerprint:
    return Fingerprint(text=ticket.description or "")


# --- Body sections ---------------------------------------------------------

def make_resource_table(resources: List[Resource]) -> str:
    """
    Fixed-width table of resources. Ids are written whole so they stay matchable.
    """
    if not resources:
        return "No Resources"
    width = max(len(r.id or "") for r in resources)
    lines = ["Resource Id".ljust(width + width // 2 + 4) + "| Partition   | Region     | Type    "]
    for r in resources:
        lines.append(
            f"{(r.id or '').ljust(width + 2)}| {(r.partition or '').ljust(11)} "
            f"| {(r.region or '').ljust(9)} | {r.type or ''} "
        )
    lines.append("-" * 96)
    return "\n".join(lines)


def make_product_fields_section(finding: Finding) -> str:
    rows = [
        ("Type", finding.type),
        ("Product Name:", finding.product_name),
        ("Provider Name:", finding.provider_name),
        ("Provider Version:", finding.provider_version),
        ("Company Name:", finding.company_name),
        ("CVE:", finding.cve),
    ]
    lines = ["h2. Product Fields:"]
    lines.extend(f"{label.ljust(25)}|    {value or 'N/A'}" for label, value in rows)
    lines.append("-" * 56)
    return "\n".join(lines)


def finding_url_from_control_arn(standards_control_arn: str) -> str:
    """
    Console URL for a standards control, e.g.
    arn:aws:securityhub:us-east-1:123456789012:control/aws-foundational-security-best-practices/v/1.0.0/S3.1
    """
    if not standards_control_arn:
        return ""
    parts = re.split(r"[/:]+", standards_control_arn)
    if len(parts) < 10:
        return ""
    partition, region = parts[1], parts[3]
    standard, version, control_id = parts[6], parts[8], parts[9]
    return (
        f"https://{region}.console.{partition}.amazon.com/securityhub/home?region={region}"
        f"#/standards/{standard}-{version}/{control_id}"
    )


def finding_url_from_id(finding_id: str) -> str:
    """
    Console search URL filtering on the finding id. The region comes from the
    ARN, or from the leading path segment for non-ARN ids.
    """
    if finding_id.startswith("arn:"):
        parts = finding_id.split(":")
        region = parts[3] if len(parts) > 3 else ""
    else:
        region = finding_id.split("/")[0]
    if not _AWS_REGION.match(region):
        region = _FALLBACK_REGION
    search = quote("Id=", safe="") + quote("\\operator\\:EQUALS\\:", safe="") + quote(finding_id, safe="")
    return f"https://{region}.console.aws.amazon.com/securityhub/home?region={region}#/findings?search={search}"


def encode_ticket_body(finding: Finding) -> str:
    """
    Render the Jira wiki-markup body for a new ticket.

    The title appears on the 'Finding Title:' line and under 'h2. Title:', and
    each resource id appears in the resources table; later runs match on both.
    """
    if finding.standards_control_arn:
        finding_url = finding_url_from_control_arn(finding.standards_control_arn)
    else:
        finding_url = finding_url_from_id(finding.id)

    sections = [
        "----",
        "*This issue was generated from Security Hub data and is managed through automation.*",
        "Please do not edit the title or body of this issue, or remove the security-hub tag.  "
        "All other edits/comments are welcome.",
        f"Finding Title: {finding.title}",
        "----",
        "h2. Type of Issue:",
        "* Security Hub Finding",
        "h2. Title:",
        finding.title,
        "h2. Description:",
        finding.description,
    ]
    if finding.remediation_text or finding.remediation_url:
        sections.extend(["h2. Remediation:", finding.remediation_url, finding.remediation_text])
    sections.extend([
        "h2. AWS Account:",
        f"{finding.account_id} ({finding.account_alias})",
        "h2. Severity:",
        finding.severity,
        make_product_fields_section(finding),
        "h2. SecurityHubFindingUrl:",
        finding_url,
        "h2. Resources:",
        "Following are the resources those were non-compliant at the time of the issue creation",
        make_resource_table(finding.resources),
        "To check the latest list of resources, kindly refer to the finding url",
        "h2. AC:",
        "* All findings of this type are resolved or suppressed, indicated by a Workflow Status of "
        "Resolved or Suppressed.  (Note:  this ticket will automatically close when the AC is met.)",
    ])
    return "\n\n".join(sections)
