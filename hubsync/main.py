# hubsync/main.py
"""
CLI entrypoint for the Security Hub -> Jira sync.

- Supports two modes:
  * dummy: read raw Security Hub findings from a JSON file (offline testing)
  * aws: query Security Hub in a live AWS account using boto3.Session
- Every option falls back to an environment variable, then to config defaults.
- Exit status: 0 clean run, 1 fatal error, 2 completed with per-item errors.
"""

import argparse
import logging
import os
import sys

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from hubsync.config import (
    DEFAULT_AWS_REGION,
    DEFAULT_JIRA_BASE_URI,
    DEFAULT_JIRA_IGNORE_STATUSES,
    DEFAULT_JIRA_LINK_DIRECTION,
    DEFAULT_JIRA_LINK_TYPE,
    DEFAULT_NEW_ISSUE_DELAY_MS,
    DEFAULT_SEVERITIES,
    SyncConfig,
    parse_bool,
    parse_custom_fields,
    parse_transition_map,
    split_csv,
    validate_severities,
)
from hubsync.jira_client import JiraClient, TrackerError
from hubsync.security_hub import SecurityHub, findings_from_json
from hubsync.sync import SecurityHubJiraSync
from hubsync.utils import build_jql_url, load_json_file, print_summary_and_report_path, save_report

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("hubsync")

EXIT_FATAL = 1
EXIT_DEGRADED = 2


def _value(arg, env_name: str, default=None):
    """Resolve: CLI -> env -> default."""
    if arg is not None and arg != "":
        return arg
    env = os.environ.get(env_name)
    if env is not None and env != "":
        return env
    return default


def _flag(arg, env_name: str, default: bool = False) -> bool:
    if arg is not None:
        return arg
    return parse_bool(os.environ.get(env_name), default)


def build_config(args) -> SyncConfig:
    """
    Build and validate the run configuration. Raises ValueError on bad input.
    """
    delay = _value(args.new_issue_delay, "SECURITY_HUB_NEW_ISSUE_DELAY", DEFAULT_NEW_ISSUE_DELAY_MS)
    try:
        delay_ms = int(delay)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid new issue delay: {delay!r}") from None
    return SyncConfig(
        jira_token=_value(args.jira_token, "JIRA_TOKEN", ""),
        jira_project_key=_value(args.jira_project, "JIRA_PROJECT", ""),
        region=_value(args.region, "AWS_REGION", DEFAULT_AWS_REGION),
        severities=validate_severities(_value(args.severities, "AWS_SEVERITIES", DEFAULT_SEVERITIES)),
        new_issue_delay_ms=delay_ms,
        include_all_products=_flag(args.include_all_products, "INCLUDE_ALL_PRODUCTS"),
        skip_products=split_csv(_value(args.skip_products, "SKIP_PRODUCTS")),
        jira_base_uri=_value(args.jira_base_uri, "JIRA_BASE_URI", DEFAULT_JIRA_BASE_URI),
        jira_ignore_statuses=split_csv(_value(args.jira_ignore_statuses, "JIRA_IGNORE_STATUSES",
                                              DEFAULT_JIRA_IGNORE_STATUSES)),
        jira_assignee=_value(args.jira_assignee, "JIRA_ASSIGNEE"),
        jira_add_labels=split_csv(_value(args.jira_add_labels, "JIRA_ADD_LABELS")),
        jira_custom_fields=parse_custom_fields(_value(args.jira_custom_fields, "JIRA_CUSTOM_FIELDS")),
        jira_link_id=_value(args.jira_link_id, "JIRA_LINK_ID"),
        jira_link_type=_value(args.jira_link_type, "JIRA_LINK_TYPE", DEFAULT_JIRA_LINK_TYPE),
        jira_link_direction=_value(args.jira_link_direction, "JIRA_LINK_DIRECTION", DEFAULT_JIRA_LINK_DIRECTION),
        transition_map=parse_transition_map(_value(args.transition_map, "JIRA_TRANSITION_MAP")),
        consolidate=_flag(args.consolidate, "JIRA_CONSOLIDATE_TICKETS"),
        auto_close=_flag(args.auto_close, "AUTO_CLOSE", True),
        dry_run=_flag(args.dry_run, "DRY_RUN"),
        account_id=_value(args.account_id, "AWS_ACCOUNT_ID"),
    )


def run_sync(config: SyncConfig, mode: str, findings_file: str = None,
             report_dir: str = "reports", print_table: bool = False):
    """
    Run one sync and write reports. Returns the SyncResult.

    Credential model:
    - AWS credentials come from the environment (e.g., aws-vault); only a region is needed.
    """
    logger.info("Syncing Security Hub and Jira (mode=%s, region=%s)", mode, config.region)
    session = boto3.Session(region_name=config.region)
    security_hub = SecurityHub(
        session,
        region=config.region,
        severities=config.severities,
        new_issue_delay_ms=config.new_issue_delay_ms,
        include_all_products=config.include_all_products,
        skip_products=config.skip_products,
    )
    jira = JiraClient(
        config.jira_base_uri,
        config.jira_token,
        config.jira_project_key,
        closed_statuses=config.jira_ignore_statuses,
        assignee=config.jira_assignee,
        dry_run=config.dry_run,
    )

    offline = None
    if mode == "dummy":
        logger.info("Reading findings from file: %s", findings_file)
        offline = findings_from_json(load_json_file(findings_file))

    result = SecurityHubJiraSync(config, security_hub, jira, findings=offline).run()

    jql_url = build_jql_url(config.jira_base_uri, result.updates)
    extra = {"region": config.region, "project": config.jira_project_key, "jql": jql_url}
    if findings_file:
        extra["source_file"] = findings_file
    report_paths = save_report(result, mode=mode, extra=extra, out_dir=report_dir)
    print_summary_and_report_path(result, report_paths, jql_url=jql_url, print_full_table=print_table)
    return result


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Keep Jira tickets in sync with active AWS Security Hub findings."
    )
    p.add_argument("--mode", choices=["dummy", "aws"], default="aws",
                   help="Run mode: dummy (findings JSON file) or aws (live Security Hub)")
    p.add_argument("--file", help="Path to findings JSON file (required for dummy mode)")
    p.add_argument("--region", help="AWS region (env AWS_REGION)")
    p.add_argument("--account-id", help="AWS account id; skips the STS lookup (env AWS_ACCOUNT_ID)")
    p.add_argument("--severities", help="Comma list of severities (env AWS_SEVERITIES)")
    p.add_argument("--new-issue-delay", help="Ignore findings younger than this many ms "
                                             "(env SECURITY_HUB_NEW_ISSUE_DELAY)")
    p.add_argument("--include-all-products", action="store_true", default=None,
                   help="Include findings from every product, not only Security Hub")
    p.add_argument("--skip-products", help="Comma list of products to skip (env SKIP_PRODUCTS)")
    p.add_argument("--jira-base-uri", help="Jira base URL (env JIRA_BASE_URI)")
    p.add_argument("--jira-token", help="Jira API token (env JIRA_TOKEN)")
    p.add_argument("--jira-project", help="Jira project key (env JIRA_PROJECT)")
    p.add_argument("--jira-ignore-statuses", help="Statuses treated as closed (env JIRA_IGNORE_STATUSES)")
    p.add_argument("--jira-assignee", help="Assignee for new tickets (env JIRA_ASSIGNEE)")
    p.add_argument("--jira-add-labels", help="Extra labels for new tickets (env JIRA_ADD_LABELS)")
    p.add_argument("--jira-custom-fields", help="JSON object merged into new ticket fields (env JIRA_CUSTOM_FIELDS)")
    p.add_argument("--jira-link-id", help="Issue key to link new tickets to (env JIRA_LINK_ID)")
    p.add_argument("--jira-link-type", help="Link type name (env JIRA_LINK_TYPE)")
    p.add_argument("--jira-link-direction", choices=["inward", "outward"], help="Link direction (env JIRA_LINK_DIRECTION)")
    p.add_argument("--transition-map", help="'Status:Transition;...' rules for closing (env JIRA_TRANSITION_MAP)")
    p.add_argument("--consolidate", action="store_true", default=None,
                   help="One ticket per finding title (env JIRA_CONSOLIDATE_TICKETS)")
    p.add_argument("--no-auto-close", dest="auto_close", action="store_false", default=None,
                   help="Retitle resolved tickets instead of transitioning them (env AUTO_CLOSE)")
    p.add_argument("--dry-run", action="store_true", default=None, help="Log Jira changes only (env DRY_RUN)")
    p.add_argument("--report-dir", default="reports", help="Directory to save reports (default: reports)")
    p.add_argument("--print-table", action="store_true", help="Print the full updates table to stdout")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.mode == "dummy" and not args.file:
        raise SystemExit("dummy mode requires --file path to JSON")
    try:
        config = build_config(args)
        result = run_sync(config, args.mode, findings_file=args.file,
                          report_dir=args.report_dir, print_table=args.print_table)
    except (ValueError, FileNotFoundError) as e:
        logger.error("Invalid configuration or input: %s", e)
        sys.exit(EXIT_FATAL)
    except (ClientError, BotoCoreError, RuntimeError) as e:
        logger.error("Security Hub error, aborting sync: %s", e)
        sys.exit(EXIT_FATAL)
    except TrackerError as e:
        logger.error("Jira error, aborting sync: %s", e)
        sys.exit(EXIT_FATAL)
    if result.degraded:
        logger.warning(
            "Sync completed with errors: %d create, %d close, %d link",
            result.create_errors, result.close_errors, result.link_errors,
        )
        sys.exit(EXIT_DEGRADED)


if __name__ == "__main__":
    main()
