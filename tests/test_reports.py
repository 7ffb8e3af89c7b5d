# tests/test_reports.py
"""
Report and console output tests.

- Parses the generated HTML report with BeautifulSoup.
- Requires beautifulsoup4 in test environment.
"""

import csv
import json
import os

import pytest
from bs4 import BeautifulSoup

from hubsync.models import SyncResult, SyncUpdate
from hubsync.utils import (
    build_jql_url,
    issue_key_from_url,
    load_json_file,
    print_summary_and_report_path,
    save_report,
)


def sample_result():
    return SyncResult(
        updates=[
            SyncUpdate("closed", "https://jira.example.com/browse/SEC-1", "SecurityHub Finding - <old>"),
            SyncUpdate("created", "https://jira.example.com/browse/SEC-101", "SecurityHub Finding - S3.1"),
        ],
        create_errors=1,
    )


def test_html_report_lists_updates(tmp_path):
    paths = save_report(sample_result(), mode="dummy", extra={"region": "us-east-1"}, out_dir=str(tmp_path))
    html_path = paths["html"]
    assert os.path.exists(html_path)

    with open(html_path, "r", encoding="utf-8") as fh:
        soup = BeautifulSoup(fh, "html.parser")

    assert "mode: dummy" in soup.find("h2").get_text(strip=True)
    summary = soup.find("ul", class_="summary")
    assert summary.find("li", id="created").get_text(strip=True) == "created: 1"
    assert summary.find("li", id="create_errors").get_text(strip=True) == "create_errors: 1"

    rows = soup.find("table").find_all("tr")
    assert len(rows) == 3
    cols = [td.get_text(strip=True) for td in rows[1].find_all("td")]
    assert cols == ["closed", "https://jira.example.com/browse/SEC-1", "SecurityHub Finding - <old>"]
    assert rows[2].find("a")["href"] == "https://jira.example.com/browse/SEC-101"


def test_json_and_csv_reports(tmp_path):
    paths = save_report(sample_result(), mode="aws", out_dir=str(tmp_path))
    with open(paths["json"], "r", encoding="utf-8") as fh:
        report = json.load(fh)
    assert report["mode"] == "aws"
    assert report["summary"] == {
        "total": 2, "created": 1, "closed": 1, "resolved": 0,
        "create_errors": 1, "close_errors": 0, "link_errors": 0,
    }
    assert "extra" not in report
    with open(paths["csv"], "r", encoding="utf-8", newline="") as fh:
        rows = list(csv.DictReader(fh))
    assert [r["action"] for r in rows] == ["closed", "created"]


def test_issue_key_from_url():
    assert issue_key_from_url("https://jira.example.com/browse/SEC-42") == "SEC-42"
    assert issue_key_from_url("https://jira.example.com/projects/SEC") == ""
    assert issue_key_from_url("") == ""


def test_build_jql_url():
    url = build_jql_url("https://jira.example.com/", sample_result().updates)
    assert url == "https://jira.example.com/issues/?jql=issueKey%20in%20%28%20SEC-1%2CSEC-101%20%29"


def test_load_json_file_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_json_file(str(tmp_path / "missing.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid JSON"):
        load_json_file(str(bad))


def test_print_summary(tmp_path, capsys):
    paths = save_report(sample_result(), mode="dummy", out_dir=str(tmp_path))
    print_summary_and_report_path(sample_result(), paths, jql_url="https://jira.example.com/issues/?jql=x")
    out = capsys.readouterr().out
    assert "Created: 1  Closed: 1" in out
    assert "Saved reports:" in out
    assert "Jira URL:" in out
