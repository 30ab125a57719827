"""Tests for the deferred queue store and drain processor."""

from __future__ import annotations

from franchise_approval.models import RegistrationStatus
from franchise_approval.registrations.actions import ActionKind

REJECT = ActionKind.REJECT_WITH_REASON.value


def _enqueue(harness, record_id="R-2", user="U1", reason="insufficient documentation", ts="1.1"):
    return harness.queue.enqueue(
        operation_type=REJECT,
        record_id=record_id,
        acting_user=user,
        payload=reason,
        origin_channel="CREVIEW",
        origin_message_ref=ts,
    )


def _rejection_emails(harness):
    return [mail for mail in harness.email.sent if "Reason:" in mail["body"]]


def test_drain_applies_entry_and_updates_origin_message(harness):
    harness.submit("R-2")
    entry_id = _enqueue(harness)

    report = harness.processor.drain()

    record = harness.store.find_by_id("R-2")
    assert (report.processed, report.remaining, report.failed, report.duplicates) == (1, 0, 0, 0)
    assert record.status is RegistrationStatus.REJECTED
    assert record.rejection_reason == "insufficient documentation"
    assert "insufficient documentation" in _rejection_emails(harness)[0]["body"]
    assert harness.web.update_calls[0]["channel"] == "CREVIEW"
    assert harness.web.update_calls[0]["ts"] == "1.1"
    assert harness.queue.get(entry_id).processed is True


def test_duplicate_entries_in_one_drain_execute_once(harness):
    harness.submit("R-2")
    first = _enqueue(harness)
    second = _enqueue(harness)

    report = harness.processor.drain()

    assert report.processed == 1
    assert report.duplicates == 1
    assert len(_rejection_emails(harness)) == 1
    assert harness.queue.get(first).processed is True
    assert harness.queue.get(second).processed is True


def test_first_reason_by_append_order_wins(harness):
    harness.submit("R-2")
    _enqueue(harness, reason="first reason")
    _enqueue(harness, reason="second reason")

    harness.processor.drain()

    assert harness.store.find_by_id("R-2").rejection_reason == "first reason"


def test_seen_set_can_be_shared_between_calls(harness):
    harness.submit("R-2")
    _enqueue(harness)
    seen = {(REJECT, "R-2")}

    report = harness.processor.drain(seen)

    assert report.duplicates == 1
    assert report.processed == 0
    assert harness.store.find_by_id("R-2").status is RegistrationStatus.UNDER_REVIEW


def test_second_drain_is_a_no_op(harness):
    harness.submit("R-2")
    _enqueue(harness)
    harness.processor.drain()

    report = harness.processor.drain()

    assert (report.processed, report.remaining) == (0, 0)
    assert len(_rejection_emails(harness)) == 1


def test_store_failure_leaves_entry_for_next_drain(harness, monkeypatch):
    harness.submit("R-2")
    harness.submit("R-5")
    failing = _enqueue(harness, record_id="R-2")
    _enqueue(harness, record_id="R-5", ts="1.5")
    real_find = harness.store.find_by_id

    def flaky_find(record_id):
        if record_id == "R-2":
            raise ConnectionError("database is locked")
        return real_find(record_id)

    monkeypatch.setattr(harness.store, "find_by_id", flaky_find)
    report = harness.processor.drain()

    assert (report.processed, report.failed, report.remaining) == (1, 1, 1)
    entry = harness.queue.get(failing)
    assert entry.processed is False
    assert entry.attempts == 1

    monkeypatch.setattr(harness.store, "find_by_id", real_find)
    retry = harness.processor.drain()

    assert (retry.processed, retry.remaining) == (1, 0)
    assert harness.store.find_by_id("R-2").status is RegistrationStatus.REJECTED


def test_not_found_entry_stays_unprocessed_with_error(harness):
    entry_id = _enqueue(harness, record_id="ghost")

    first = harness.processor.drain()
    second = harness.processor.drain()

    assert (first.failed, second.failed, second.remaining) == (1, 1, 1)
    assert harness.queue.get(entry_id).attempts == 2
    assert harness.web.update_calls == []


def test_already_rejected_by_same_user_completes_as_unchanged(harness):
    harness.submit("R-2")
    harness.service.reject("R-2", "U1", "first reason")
    _enqueue(harness, reason="later reason")

    report = harness.processor.drain()

    assert report.processed == 1
    assert harness.store.find_by_id("R-2").rejection_reason == "first reason"
    assert len(_rejection_emails(harness)) == 1


def test_unknown_operation_is_recorded_as_failure(harness):
    harness.submit("R-2")
    entry_id = harness.queue.enqueue(operation_type="promote", record_id="R-2", acting_user="U1")

    report = harness.processor.drain()

    assert report.failed == 1
    entry = harness.queue.get(entry_id)
    assert entry.processed is False
    assert "promote" in entry.last_error


def test_bookkeeping_failure_does_not_stop_the_batch(harness, monkeypatch):
    harness.submit("R-2")
    harness.submit("R-5")
    first = _enqueue(harness, record_id="R-2")
    _enqueue(harness, record_id="R-5", ts="1.5")
    real_mark = harness.queue.mark_processed
    calls = []

    def flaky_mark(entry_id):
        calls.append(entry_id)
        if len(calls) == 1:
            raise ConnectionError("database is locked")
        return real_mark(entry_id)

    monkeypatch.setattr(harness.queue, "mark_processed", flaky_mark)
    report = harness.processor.drain()

    assert (report.processed, report.failed, report.remaining) == (1, 1, 1)
    assert harness.store.find_by_id("R-5").status is RegistrationStatus.REJECTED
    assert harness.queue.get(first).last_error == "database is locked"

    retry = harness.processor.drain()

    assert (retry.processed, retry.remaining) == (1, 0)
    assert len(_rejection_emails(harness)) == 2


def test_drain_survives_failed_failure_record_and_count(harness, monkeypatch):
    harness.queue.enqueue(operation_type="promote", record_id="R-2", acting_user="U1")

    def unavailable(*args, **kwargs):
        raise ConnectionError("database is locked")

    monkeypatch.setattr(harness.queue, "record_failure", unavailable)
    monkeypatch.setattr(harness.queue, "count_unprocessed", unavailable)

    report = harness.processor.drain()

    assert (report.processed, report.failed, report.remaining) == (0, 1, 1)
