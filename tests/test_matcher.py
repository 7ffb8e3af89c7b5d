# tests/test_matcher.py
"""
Unit tests for ticket/finding identity matching.
"""

from conftest import make_finding, make_ticket
from hubsync.matcher import (
    is_already_in_new,
    is_covered_by_any,
    is_fully_covered,
    matches,
    same_resource_set,
)
from hubsync.models import Resource

BODY = (
    "Finding Title: S3.8 S3 Block Public Access setting should be enabled\n"
    "Resources:\n"
    "arn:aws:s3:::logs-bucket | aws | us-east-1 | AwsS3Bucket\n"
)
TITLE = "S3.8 S3 Block Public Access setting should be enabled"


def test_matches_on_title_substring():
    ticket = make_ticket("SEC-1", BODY)
    assert matches(ticket, make_finding(TITLE))
    # a shorter title embedded in the body also matches
    assert matches(ticket, make_finding("S3.8"))
    assert not matches(ticket, make_finding("EC2.19 Security groups should not allow unrestricted access"))


def test_empty_title_never_matches():
    ticket = make_ticket("SEC-1", BODY)
    assert not matches(ticket, make_finding(""))
    assert not is_fully_covered(ticket, make_finding("", "arn:aws:s3:::logs-bucket"))


def test_fully_covered_needs_every_resource_id():
    ticket = make_ticket("SEC-1", BODY)
    assert is_fully_covered(ticket, make_finding(TITLE, "arn:aws:s3:::logs-bucket"))
    assert not is_fully_covered(ticket, make_finding(TITLE, "arn:aws:s3:::logs-bucket", "arn:aws:s3:::other"))


def test_fully_covered_implies_matches():
    ticket = make_ticket("SEC-1", BODY)
    findings = [
        make_finding(TITLE),
        make_finding(TITLE, "arn:aws:s3:::logs-bucket"),
        make_finding("Unrelated", "arn:aws:s3:::logs-bucket"),
        make_finding(TITLE, "arn:aws:s3:::missing"),
    ]
    for f in findings:
        if is_fully_covered(ticket, f):
            assert matches(ticket, f)
    # the unrelated title mentions a listed resource but is not covered
    assert not is_fully_covered(ticket, findings[2])


def test_empty_resource_list_is_vacuously_covered():
    assert is_fully_covered(make_ticket("SEC-1", BODY), make_finding(TITLE))


def test_resource_with_empty_id_is_covered():
    finding = make_finding(TITLE)
    finding.resources.append(Resource(id=""))
    assert is_fully_covered(make_ticket("SEC-1", BODY), finding)
    # the title still has to match
    assert not is_fully_covered(make_ticket("SEC-1", "unrelated"), finding)


def test_ticket_without_description():
    ticket = make_ticket("SEC-1", "")
    ticket.description = None
    assert not matches(ticket, make_finding(TITLE))


def test_same_resource_set_uses_containment_both_ways():
    a = [Resource(id="arn:aws:s3:::bucket-a")]
    assert same_resource_set(a, [Resource(id="bucket-a")])
    assert same_resource_set([Resource(id="bucket-a")], a)
    assert not same_resource_set(a, [Resource(id="bucket-b")])


def test_same_resource_set_requires_equal_lengths_and_non_empty_ids():
    assert same_resource_set([], [])
    assert not same_resource_set([Resource(id="r1")], [Resource(id="r1"), Resource(id="r2")])
    assert not same_resource_set([Resource(id="")], [Resource(id="")])


def test_same_resource_set_is_positional_not_set_equality():
    # both entries of `a` pair with r1, r2 is never checked
    a = [Resource(id="r1"), Resource(id="r1")]
    b = [Resource(id="r1"), Resource(id="r2")]
    assert same_resource_set(a, b)
    assert not same_resource_set(b, a)


def test_is_already_in_new():
    queued = [make_finding("IAM.6 Hardware MFA should be enabled for the root user", "AWS::::Account:111122223333")]
    assert is_already_in_new(make_finding("IAM.6", "AWS::::Account:111122223333"), queued)
    assert not is_already_in_new(make_finding("IAM.6", "AWS::::Account:444455556666"), queued)
    assert not is_already_in_new(make_finding("IAM.9", "AWS::::Account:111122223333"), queued)
    assert not is_already_in_new(make_finding("", "AWS::::Account:111122223333"), queued)


def test_is_covered_by_any():
    tickets = [make_ticket("SEC-1", "nothing here"), make_ticket("SEC-2", BODY)]
    assert is_covered_by_any(make_finding(TITLE, "arn:aws:s3:::logs-bucket"), tickets)
    assert not is_covered_by_any(make_finding(TITLE, "arn:aws:s3:::other"), tickets)
