import logging

from reconsync.infrastructure.observability.logging import (
    SyncRunFormatter,
    current_log_context,
    log_context,
    run_tag,
)
from reconsync.infrastructure.observability.metrics import (
    get_metrics,
    get_metrics_summary,
    record_detail_fetch,
    record_sync_run,
)


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("reconsync.test", logging.INFO, __file__, 1, message, None, None)


def test_log_context_nests_and_restores():
    assert current_log_context() == {}
    with log_context(entity="sales-order", scope="BR01"):
        with log_context(run_id=3, record=None):
            assert current_log_context() == {"entity": "sales-order", "scope": "BR01", "run_id": 3}
        assert current_log_context() == {"entity": "sales-order", "scope": "BR01"}
    assert current_log_context() == {}


def test_run_tag_orders_run_fields_first():
    assert run_tag({}) == ""
    assert run_tag({"entity": "sales-order"}) == "sales-order"
    assert run_tag({"scope": "BR01"}) == "@BR01"
    assert (
        run_tag({"attempt": 2, "record": "55", "run_id": 12, "scope": "BR01", "entity": "sales-order"})
        == "sales-order@BR01 run=12 id=55 attempt=2"
    )


def test_formatter_tags_messages_with_run_context():
    formatter = SyncRunFormatter("%(message)s")

    assert formatter.format(_record("plain")) == "plain"
    with log_context(entity="sales-order", scope="BR01", run_id=9):
        assert formatter.format(_record("Listed 5")) == "Listed 5 [sales-order@BR01 run=9]"


def test_sync_run_tally_accumulates():
    get_metrics().reset()

    record_sync_run("sales-order", "BR01", "success", 1.5, synced=4, failed=1)
    record_sync_run("sales-order", "BR01", "aborted", 0.5, synced=0, failed=0)

    tally = get_metrics().run_tally("sales-order", "BR01")
    assert tally.runs == 2
    assert tally.by_status == {"success": 1, "aborted": 1}
    assert (tally.synced, tally.failed) == (4, 1)
    assert tally.avg_duration == 1.0
    assert get_metrics().run_tally("sales-order", "BR02").runs == 0
    summary = get_metrics_summary()
    assert summary["runs"]["sales-order@BR01"]["runs"] == {"success": 1, "aborted": 1}


def test_detail_fetch_tally():
    get_metrics().reset()

    record_detail_fetch("sales-order", "success", 1)
    record_detail_fetch("sales-order", "transient", 3)

    tally = get_metrics().fetch_tally("sales-order")
    assert tally.fetches == 2
    assert tally.by_outcome["transient"] == 1
    assert tally.attempts == 4
    assert get_metrics_summary()["fetches"]["sales-order"]["attempts"] == 4
