# hubsync/security_hub.py
"""
Security Hub findings source.

- Contains pure helpers that build filters and convert API responses.
- SecurityHub wraps a boto3 Session and lists every active finding, page by page.
- Caller should handle ClientError/BotoCoreError: a failed listing aborts the run.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from hubsync.config import FINDINGS_PAGE_SIZE
from hubsync.models import Finding, Resource

logger = logging.getLogger(__name__)

_ACCOUNT_ID = re.compile(r"^[0-9]{12}$")
SECURITY_HUB_PRODUCT = "Security Hub"


# --- Pure helpers -----------------------------------------------------------

def build_active_findings_filters(severities: List[str], new_issue_delay_ms: int,
                                  now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Filters for active, untriaged findings older than the new-issue delay.
    """
    now = now or datetime.now(timezone.utc)
    max_created = now - timedelta(milliseconds=new_issue_delay_ms)
    return {
        "RecordState": [{"Comparison": "EQUALS", "Value": "ACTIVE"}],
        "WorkflowStatus": [
            {"Comparison": "EQUALS", "Value": "NEW"},
            {"Comparison": "EQUALS", "Value": "NOTIFIED"},
        ],
        "SeverityLabel": [{"Comparison": "EQUALS", "Value": s} for s in severities],
        "CreatedAt": [{
            "Start": "1970-01-01T00:00:00Z",
            "End": max_created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{max_created.microsecond // 1000:03d}Z",
        }],
    }


def build_skip_products_filter(skip_products: List[str]) -> Tuple[bool, bool, List[Dict[str, str]]]:
    """
    Return (skip_default, skip_tenable, ProductName filters) for the skip list.

    'Default' and 'Tenable' are not real product names: Tenable findings arrive
    under the 'Default' product and are told apart by CompanyName.
    """
    skip_default = False
    skip_tenable = False
    filters: List[Dict[str, str]] = []
    for product in skip_products:
        if product == "Default":
            skip_default = True
        elif product == "Tenable":
            skip_tenable = True
        else:
            filters.append({"Comparison": "NOT_EQUALS", "Value": product})
    if skip_default or skip_tenable:
        filters.append({"Comparison": "NOT_EQUALS", "Value": "Default"})
    return skip_default, skip_tenable, filters


def build_extension_filters(base: Dict[str, Any], skip_default: bool, skip_tenable: bool) -> Optional[Dict[str, Any]]:
    """
    Filters for the second query that brings back the half of the 'Default'
    product the caller did not skip. None when no second query is needed.
    """
    if skip_default and not skip_tenable:
        filters = dict(base)
        filters["ProductName"] = [{"Comparison": "EQUALS", "Value": "Default"}]
        filters["ProductFields"] = [{"Key": "CompanyName", "Comparison": "NOT_EQUALS", "Value": "Tenable"}]
        return filters
    if skip_tenable and not skip_default:
        filters = {k: v for k, v in base.items() if k != "ProductName"}
        filters["ProductFields"] = [{"Key": "CompanyName", "Comparison": "EQUALS", "Value": "Tenable"}]
        return filters
    return None


def resource_from_aws(raw: Dict[str, Any]) -> Resource:
    return Resource(
        id=raw.get("Id") or "",
        partition=raw.get("Partition"),
        region=raw.get("Region"),
        type=raw.get("Type"),
    )


def finding_from_aws(raw: Dict[str, Any], account_alias: str = "") -> Finding:
    """
    Convert an AwsSecurityFinding dict into a Finding.
    """
    product_fields = raw.get("ProductFields") or {}
    recommendation = (raw.get("Remediation") or {}).get("Recommendation") or {}
    return Finding(
        id=raw.get("Id") or "",
        title=raw.get("Title") or "",
        description=raw.get("Description") or "",
        severity=(raw.get("Severity") or {}).get("Label") or "",
        region=raw.get("Region") or "",
        account_id=raw.get("AwsAccountId") or "",
        account_alias=account_alias,
        product_name=raw.get("ProductName") or "",
        company_name=product_fields.get("CompanyName") or raw.get("CompanyName") or "",
        provider_name=product_fields.get("ProviderName") or "",
        provider_version=product_fields.get("ProviderVersion") or "",
        type=product_fields.get("Type") or "",
        cve=product_fields.get("CVE") or "",
        standards_control_arn=product_fields.get("StandardsControlArn") or "",
        remediation_text=recommendation.get("Text") or "",
        remediation_url=recommendation.get("Url") or "",
        resources=[resource_from_aws(r) for r in raw.get("Resources") or []],
    )


def findings_from_json(data: Any, account_alias: str = "") -> List[Finding]:
    """
    Offline mode: accept a list of raw findings or a get_findings-shaped dict.
    """
    raw_findings = data.get("Findings", []) if isinstance(data, dict) else data
    if not isinstance(raw_findings, list):
        raise ValueError("Findings JSON must be a list or an object with a 'Findings' list")
    return [finding_from_aws(raw, account_alias) for raw in raw_findings]


def dedupe_by_id(findings: List[Finding]) -> List[Finding]:
    seen = set()
    unique: List[Finding] = []
    for f in findings:
        if f.id and f.id in seen:
            continue
        seen.add(f.id)
        unique.append(f)
    return unique


# --- Live AWS helpers -------------------------------------------------------

def get_account_id_live(session, region: str) -> str:
    """
    Return the caller's 12-digit account id via STS.
    """
    sts = session.client("sts", region_name=region)
    account_id = sts.get_caller_identity().get("Account") or ""
    if not _ACCOUNT_ID.match(account_id):
        raise RuntimeError("An issue was encountered when looking up your AWS Account ID. Refusing to continue.")
    return account_id


def get_account_alias_live(session, region: str) -> str:
    """
    Return the first IAM account alias, or an empty string when none is set.
    """
    iam = session.client("iam", region_name=region)
    aliases = iam.list_account_aliases().get("AccountAliases") or []
    return aliases[0] if aliases else ""


class SecurityHub:
    def __init__(self, session, region: str, severities: List[str], new_issue_delay_ms: int,
                 include_all_products: bool = False, skip_products: Optional[List[str]] = None):
        self.session = session
        self.region = region
        self.severities = severities
        self.new_issue_delay_ms = new_issue_delay_ms
        self.include_all_products = include_all_products
        self.skip_products = skip_products or []
        self._client = None
        self._account_alias: Optional[str] = None

    @property
    def client(self):
        if self._client is None:
            self._client = self.session.client("securityhub", region_name=self.region)
        return self._client

    def get_account_id(self) -> str:
        return get_account_id_live(self.session, self.region)

    def get_account_alias(self) -> str:
        if self._account_alias is None:
            self._account_alias = get_account_alias_live(self.session, self.region)
        return self._account_alias

    def query_findings(self, filters: Dict[str, Any],
                       next_token: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        Fetch one page of raw findings and the token for the next page.
        """
        kwargs: Dict[str, Any] = {"Filters": filters, "MaxResults": FINDINGS_PAGE_SIZE}
        if next_token:
            kwargs["NextToken"] = next_token
        resp = self.client.get_findings(**kwargs)
        return resp.get("Findings", []) or [], resp.get("NextToken")

    def fetch_paginated_findings(self, filters: Dict[str, Any]) -> List[Finding]:
        alias = self.get_account_alias()
        findings: List[Finding] = []
        next_token = None
        while True:
            page, next_token = self.query_findings(filters, next_token)
            findings.extend(finding_from_aws(raw, alias) for raw in page)
            if not next_token:
                break
        return findings

    def list_active_findings(self) -> List[Finding]:
        """
        High-level listing: base query plus the optional Default/Tenable extension query.
        """
        filters = build_active_findings_filters(self.severities, self.new_issue_delay_ms)
        skip_default = skip_tenable = False
        if self.skip_products:
            skip_default, skip_tenable, skip_filters = build_skip_products_filter(self.skip_products)
            if skip_filters:
                filters["ProductName"] = skip_filters
        if not self.include_all_products:
            filters["ProductName"] = [{"Comparison": "EQUALS", "Value": SECURITY_HUB_PRODUCT}]

        logger.info("Getting active Security Hub findings with severities: %s", ",".join(self.severities))
        findings = self.fetch_paginated_findings(filters)

        extension = build_extension_filters(filters, skip_default, skip_tenable)
        if extension is not None:
            findings = self.fetch_paginated_findings(extension) + findings

        findings = dedupe_by_id(findings)
        logger.info("Found %d active findings", len(findings))
        return findings
