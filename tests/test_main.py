# tests/test_main.py
"""
CLI tests: option resolution, exit codes and an offline dummy run.
"""

import json
from unittest.mock import patch

import pytest

from hubsync import main as cli
from hubsync.models import SyncResult

ENV_VARS = [
    "JIRA_TOKEN", "JIRA_PROJECT", "JIRA_BASE_URI", "AWS_REGION", "AWS_SEVERITIES", "JIRA_TRANSITION_MAP",
    "AUTO_CLOSE", "DRY_RUN", "JIRA_CONSOLIDATE_TICKETS", "AWS_ACCOUNT_ID", "SKIP_PRODUCTS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_build_config_from_env(clean_env):
    clean_env.setenv("JIRA_TOKEN", "env-token")
    clean_env.setenv("JIRA_PROJECT", "SEC")
    clean_env.setenv("AWS_SEVERITIES", "critical")
    clean_env.setenv("JIRA_TRANSITION_MAP", "Open:Start;In Progress:Done")
    clean_env.setenv("AUTO_CLOSE", "false")
    clean_env.setenv("DRY_RUN", "true")
    config = cli.build_config(cli.parse_args([]))
    assert config.jira_token == "env-token"
    assert config.severities == ["CRITICAL"]
    assert [r.status for r in config.transition_map] == ["OPEN", "IN PROGRESS"]
    assert config.auto_close is False
    assert config.dry_run is True
    assert config.consolidate is False


def test_cli_overrides_env(clean_env):
    clean_env.setenv("JIRA_TOKEN", "env-token")
    clean_env.setenv("JIRA_PROJECT", "ENV")
    clean_env.setenv("DRY_RUN", "true")
    args = cli.parse_args(["--jira-project", "CLI", "--region", "eu-west-1", "--no-auto-close", "--consolidate"])
    config = cli.build_config(args)
    assert config.jira_project_key == "CLI"
    assert config.region == "eu-west-1"
    assert config.auto_close is False
    assert config.consolidate is True
    assert config.dry_run is True


def test_invalid_transition_map_exits_fatal(clean_env):
    clean_env.setenv("JIRA_TOKEN", "t")
    clean_env.setenv("JIRA_PROJECT", "SEC")
    with pytest.raises(SystemExit) as exc:
        cli.main(["--transition-map", "*:Done;Open:Start"])
    assert exc.value.code == cli.EXIT_FATAL


def test_missing_token_exits_fatal(clean_env):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--jira-project", "SEC"])
    assert exc.value.code == cli.EXIT_FATAL


def test_dummy_mode_requires_file():
    with pytest.raises(SystemExit):
        cli.main(["--mode", "dummy"])


def test_degraded_run_exits_2(clean_env, tmp_path):
    clean_env.setenv("JIRA_TOKEN", "t")
    clean_env.setenv("JIRA_PROJECT", "SEC")
    with patch.object(cli, "run_sync", return_value=SyncResult(link_errors=1)):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--report-dir", str(tmp_path)])
    assert exc.value.code == cli.EXIT_DEGRADED


def test_clean_run_returns_normally(clean_env, tmp_path):
    clean_env.setenv("JIRA_TOKEN", "t")
    clean_env.setenv("JIRA_PROJECT", "SEC")
    with patch.object(cli, "run_sync", return_value=SyncResult()) as run_sync:
        cli.main(["--report-dir", str(tmp_path)])
    run_sync.assert_called_once()


def test_dummy_run_writes_reports(clean_env, tmp_path):
    findings = {"Findings": [{
        "Id": "f-1",
        "Title": "S3.1 Block public access",
        "AwsAccountId": "123456789012",
        "Region": "us-east-1",
        "ProductName": "Security Hub",
        "Severity": {"Label": "HIGH"},
        "Resources": [{"Id": "arn:aws:s3:::b1", "Type": "AwsS3Bucket"}],
    }]}
    path = tmp_path / "findings.json"
    path.write_text(json.dumps(findings), encoding="utf-8")
    config = cli.build_config(cli.parse_args([
        "--jira-token", "t", "--jira-project", "SEC", "--account-id", "123456789012", "--dry-run",
    ]))
    with patch("hubsync.jira_client.JiraClient.search_open_tickets", return_value=[]):
        result = cli.run_sync(config, "dummy", findings_file=str(path), report_dir=str(tmp_path / "reports"))
    assert result.created == 1
    assert result.updates[0].web_url.endswith("/browse/DRYRUN-KEY-1")
    assert len(list((tmp_path / "reports").glob("sync-*-dummy.*"))) == 3
