"""Keep Jira tickets in sync with active AWS Security Hub findings."""

__version__ = "0.1.0"
