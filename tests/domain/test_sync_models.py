"""Tests for run-scoped sync models."""

import pytest

from reconsync.domain.models import (
    DetailFetchOutcome,
    ErrorKind,
    FailureSample,
    RemoteRecordRef,
    SyncMode,
    SyncReport,
    SyncStatus,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("missing", SyncMode.MISSING_ONLY),
        ("MissingOnly", SyncMode.MISSING_ONLY),
        ("missing_only", SyncMode.MISSING_ONLY),
        ("all", SyncMode.ALL),
        (" ALL ", SyncMode.ALL),
        (SyncMode.ALL, SyncMode.ALL),
    ],
)
def test_sync_mode_parse(value, expected):
    assert SyncMode.parse(value) is expected


def test_sync_mode_parse_rejects_unknown():
    with pytest.raises(ValueError):
        SyncMode.parse("some")


def test_outcome_ok_requires_payload_and_no_error():
    assert DetailFetchOutcome("1", payload={"id": 1}, attempts=1).ok
    assert not DetailFetchOutcome("1", error_kind=ErrorKind.PERMANENT, error="404").ok
    assert not DetailFetchOutcome("1").ok


def test_cancelled_outcome_has_no_attempts():
    outcome = DetailFetchOutcome.cancelled("9", version_token=4)

    assert outcome.error_kind is ErrorKind.CANCELLED
    assert outcome.attempts == 0
    assert outcome.version_token == 4
    assert not outcome.ok


def test_status_to_dict_shape():
    status = SyncStatus(
        total=3,
        new=1,
        updated=1,
        unchanged=1,
        need_sync=2,
        in_database=2,
        new_samples=(RemoteRecordRef("11", "SO-11", 1),),
    )

    data = status.to_dict()

    assert data["summary"]["need_sync"] == 2
    assert data["summary"]["in_database"] == 2
    assert data["new_samples"] == [
        {"external_id": "11", "display_number": "SO-11", "version_token": 1}
    ]
    assert data["updated_samples"] == []


def test_report_to_dict_serialises_failures():
    report = SyncReport(
        entity="sales-order",
        scope="BR01",
        mode="missing",
        status="success",
        failed=1,
        failed_samples=(FailureSample("3", "transient", "HTTP 503", 3),),
    )

    data = report.to_dict()

    assert data["failed_samples"] == [
        {"external_id": "3", "error_kind": "transient", "error": "HTTP 503", "attempts": 3}
    ]
    assert data["status"] == "success"
