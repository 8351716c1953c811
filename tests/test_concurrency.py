"""Races on duplicate applications, the last free seat and score history."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from letsmeet.db.models import Meeting, MeetingStatus
from letsmeet.errors import CapacityExceeded, ConflictError
from letsmeet.services.application_service import application_service
from letsmeet.services.attendance_service import attendance_service
from letsmeet.services.meeting_service import meeting_service
from letsmeet.services.score_service import score_service
from letsmeet.services.user_service import user_service

WORKERS = 6


def _race(session_factory, calls):
    """Run each call on its own session, released together by a barrier."""
    barrier = threading.Barrier(len(calls))

    def run(call):
        session = session_factory()
        try:
            barrier.wait()
            call(session)
            return "ok"
        except CapacityExceeded:
            return "capacity"
        except ConflictError:
            return "conflict"
        except Exception as e:  # surfaced in the assertion message
            return repr(e)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


def test_duplicate_applications_yield_one_row(db, session_factory, make_user, make_meeting):
    make_user("host")
    make_user("a")
    meeting = make_meeting("host")
    meeting_id = meeting.id

    results = _race(
        session_factory,
        [lambda s: application_service.apply(s, meeting_id, "a") for _ in range(WORKERS)]
    )

    assert results.count("ok") == 1, results
    assert results.count("conflict") == WORKERS - 1, results


def test_last_seat_goes_to_exactly_one_approval(db, session_factory, make_user, make_meeting):
    make_user("host")
    meeting = make_meeting("host", max_participants=2)
    meeting_id = meeting.id

    first = None
    pending = []
    for i in range(WORKERS + 1):
        uid = f"user-{i}"
        make_user(uid)
        application = application_service.apply(db, meeting_id, uid)
        if first is None:
            first = application
        else:
            pending.append(application.id)
    application_service.approve(db, first.id, "host")

    results = _race(
        session_factory,
        [
            (lambda app_id: lambda s: application_service.approve(s, app_id, "host"))(app_id)
            for app_id in pending
        ]
    )

    assert results.count("ok") == 1, results
    assert results.count("capacity") == WORKERS - 1, results

    db.expire_all()
    stored = db.query(Meeting).filter(Meeting.id == meeting_id).one()
    assert stored.approved_count == 2
    assert meeting_service.count_approved(db, meeting_id) == 2
    assert stored.status == MeetingStatus.closed


def test_stale_session_cannot_overbook(session_factory, make_user, make_meeting, db):
    make_user("host")
    for uid in ("a", "b", "c"):
        make_user(uid)
    meeting = make_meeting("host", max_participants=2)
    apps = [application_service.apply(db, meeting.id, uid) for uid in ("a", "b", "c")]
    application_service.approve(db, apps[0].id, "host")

    first = session_factory()
    second = session_factory()
    try:
        # Both hosts' sessions see one free seat
        for session in (first, second):
            seen = session.query(Meeting).filter(Meeting.id == meeting.id).one()
            assert seen.approved_count == 1

        application_service.approve(first, apps[1].id, "host")

        with pytest.raises(CapacityExceeded):
            application_service.approve(second, apps[2].id, "host")
    finally:
        first.close()
        second.close()

    assert meeting_service.count_approved(db, meeting.id) == 2


def test_concurrent_attendance_reads_history_in_turn(
    db, session_factory, make_user, make_past_meeting, monkeypatch
):
    make_user("host")
    make_user("a", score=50)
    meeting_ids = []
    for _ in range(4):
        meeting = make_past_meeting("host")
        application = application_service.apply(db, meeting.id, "a")
        application_service.approve(db, application.id, "host")
        meeting_service.transition(db, meeting.id, MeetingStatus.completed, actor_id="host")
        meeting_ids.append(meeting.id)

    for meeting_id in meeting_ids[:2]:
        attendance_service.record_attendance(db, meeting_id, "a", "attended")

    read_counts = attendance_service.history_counts

    def slow_history_counts(session, user_id):
        counts = read_counts(session, user_id)
        # Leave room for the other outcome to read the same history
        time.sleep(0.3)
        return counts

    monkeypatch.setattr(attendance_service, "history_counts", slow_history_counts)

    changes = []

    def record(meeting_id):
        def call(session):
            result = attendance_service.record_attendance(session, meeting_id, "a", "attended")
            changes.append(result["score_entry"].score_change)
        return call

    results = _race(session_factory, [record(meeting_id) for meeting_id in meeting_ids[2:]])

    assert results == ["ok", "ok"], results
    # Third attendance unlocks the rate score, the fourth keeps it at 4/4
    assert sorted(changes) == [0, 40]
    db.expire_all()
    assert user_service.get_profile(db, "a").trust_score == 90
    assert score_service.recompute_from_ledger(db, "a") == 90
