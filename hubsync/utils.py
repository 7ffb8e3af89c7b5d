# hubsync/utils.py
"""
Utility helpers: JSON loading, run reports, and console output.

- Uses Rich for colorful, wrapped tables in the terminal.
- Saves JSON, CSV, and HTML reports of every ticket a run touched.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from html import escape
from typing import Dict, List, Optional
from urllib.parse import quote
import csv
import json
import os
import re
from json import JSONDecodeError

from rich.console import Console
from rich.table import Table
from rich.text import Text

from hubsync.models import SyncResult, SyncUpdate

_console = Console()
_ISSUE_KEY = re.compile(r"/browse/([A-Z][A-Z0-9_]*-\d+)")


def load_json_file(path: str):
    """
    Load JSON from a file and return the decoded value.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Input JSON file not found: {path}.")
    try:
        with open(path, "r", encoding="utf-8-sig") as fh:
            return json.load(fh)
    except JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e.msg} (line {e.lineno} column {e.colno})") from e


def ensure_reports_dir(path: str = "reports") -> str:
    os.makedirs(path, exist_ok=True)
    return path


def issue_key_from_url(url: str) -> str:
    match = _ISSUE_KEY.search(url or "")
    return match.group(1) if match else ""


def build_jql_url(base_uri: str, updates: List[SyncUpdate]) -> str:
    """
    Jira search URL listing every ticket in `updates`.
    """
    keys = [k for k in (issue_key_from_url(u.web_url) for u in updates) if k]
    jql = f"issueKey in ( {','.join(keys)} )"
    return f"{base_uri.rstrip('/')}/issues/?jql={quote(jql, safe='')}"


def summarize(result: SyncResult) -> Dict[str, int]:
    return {
        "total": len(result.updates),
        "created": result.created,
        "closed": result.closed,
        "resolved": result.resolved,
        "create_errors": result.create_errors,
        "close_errors": result.close_errors,
        "link_errors": result.link_errors,
    }


def save_report(result: SyncResult, mode: str, extra: Optional[dict] = None, out_dir: str = "reports") -> Dict[str, str]:
    """
    Save JSON, CSV, and HTML reports and return their paths.
    """
    out_dir = ensure_reports_dir(out_dir)
    now = datetime.now(timezone.utc).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")
    updates = [asdict(u) for u in result.updates]
    report = {"sync_time": now, "mode": mode, "summary": summarize(result), "updates": updates}
    if extra:
        report["extra"] = extra

    base_ts = now.replace(":", "-")
    json_path = os.path.join(out_dir, f"sync-{base_ts}-{mode}.json")
    csv_path = os.path.join(out_dir, f"sync-{base_ts}-{mode}.csv")
    html_path = os.path.join(out_dir, f"sync-{base_ts}-{mode}.html")

    # JSON
    with open(json_path, "w", encoding="utf-8") as fh:
        json.dump(report, fh, indent=2)

    # CSV
    fieldnames = ["action", "web_url", "summary"]
    with open(csv_path, "w", encoding="utf-8", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=fieldnames)
        writer.writeheader()
        for u in updates:
            writer.writerow({k: u.get(k, "") for k in fieldnames})

    # HTML
    html_rows: List[str] = []
    html_rows.append("<!doctype html>")
    html_rows.append("<html><head><meta charset='utf-8'><title>Sync Report</title>")
    html_rows.append("<style>body{font-family:Arial,Helvetica,sans-serif;margin:20px}table{border-collapse:collapse;width:100%}th,td{border:1px solid #ddd;padding:8px}th{background:#f2f2f2;text-align:left}tr:nth-child(even){background:#fafafa}</style>")
    html_rows.append("</head><body>")
    html_rows.append(f"<h2>Sync Report - {now} - mode: {escape(mode)}</h2>")
    html_rows.append("<ul class='summary'>")
    for k, v in report["summary"].items():
        html_rows.append(f"<li id='{k}'>{k}: {v}</li>")
    html_rows.append("</ul>")
    if extra:
        html_rows.append("<div><strong>Metadata:</strong><ul>")
        for k, v in extra.items():
            html_rows.append(f"<li>{escape(str(k))}: {escape(str(v))}</li>")
        html_rows.append("</ul></div>")
    html_rows.append("<table><thead><tr><th>Action</th><th>Ticket</th><th>Summary</th></tr></thead><tbody>")
    for u in updates:
        url = escape(u["web_url"])
        html_rows.append(
            f"<tr><td>{escape(u['action'])}</td><td><a href='{url}'>{url}</a></td><td>{escape(u['summary'])}</td></tr>"
        )
    html_rows.append("</tbody></table></body></html>")
    with open(html_path, "w", encoding="utf-8") as fh:
        fh.write("\n".join(html_rows))

    return {"json": json_path, "csv": csv_path, "html": html_path}


# --- Console printing --------------------------------------------------------

def _rich_action_text(action: str) -> Text:
    if action == "created":
        return Text(action, style="bold yellow")
    if action == "closed":
        return Text(action, style="bold green")
    if action == "resolved":
        return Text(action, style="bold blue")
    return Text(action)


def _rich_error_text(count: int) -> Text:
    return Text(str(count), style="bold red" if count else "green")


def print_summary_and_report_path(result: SyncResult, report_paths: Dict[str, str], jql_url: str = "",
                                  show_top: int = 10, print_full_table: bool = False):
    """
    Print a compact summary and a colorful table of touched tickets.
    """
    counts = summarize(result)
    _console.print("\nSync summary:")
    _console.print(f"- Total updates: {counts['total']}")
    _console.print(f"- Created: {counts['created']}  Closed: {counts['closed']}  Resolved: {counts['resolved']}")
    errors = Text("- Errors: create ")
    errors.append_text(_rich_error_text(counts["create_errors"]))
    errors.append(", close ")
    errors.append_text(_rich_error_text(counts["close_errors"]))
    errors.append(", link ")
    errors.append_text(_rich_error_text(counts["link_errors"]))
    _console.print(errors)
    if result.updates:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Action")
        table.add_column("Ticket", style="cyan", overflow="fold")
        table.add_column("Summary", overflow="fold")
        for u in (result.updates if print_full_table else result.updates[:show_top]):
            table.add_row(_rich_action_text(u.action), u.web_url, u.summary)
        _console.print(table)
    if jql_url:
        _console.print(f"\nJira URL: {jql_url}")
    _console.print("\nSaved reports:")
    _console.print(f"- JSON: {report_paths.get('json')}")
    _console.print(f"- CSV:  {report_paths.get('csv')}")
    _console.print(f"- HTML: {report_paths.get('html')}\n")
