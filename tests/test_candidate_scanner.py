from datetime import datetime, timedelta, timezone

from app.services.candidate_scanner import CandidateScanner


def test_only_open_assigned_complaints_are_candidates(seed, db):
    open_one = seed.complaint(status="under_review")
    verified = seed.complaint(status="verified")
    seed.complaint(status="resolved")
    seed.complaint(status="closed")
    seed.complaint(status="submitted")
    seed.complaint(status="in_progress", department_id=None)
    seed.complaint(status="in_progress", location_id=None)

    candidates = CandidateScanner(db).candidates()

    assert {candidate.complaint_id for candidate in candidates} == {open_one.id, verified.id}


def test_terminal_statuses_never_scanned_even_if_configured(seed, db):
    seed.complaint(status="resolved")
    in_progress = seed.complaint(status="in_progress")

    candidates = CandidateScanner(db, open_statuses=["in_progress", "resolved"]).candidates()

    assert [candidate.complaint_id for candidate in candidates] == [in_progress.id]


def test_last_status_change_falls_back_to_creation(seed, db):
    complaint = seed.complaint(age=timedelta(hours=10))

    candidate = CandidateScanner(db).candidates()[0]

    assert candidate.complaint_id == complaint.id
    assert candidate.last_status_change_at == candidate.created_at
    assert candidate.created_at.tzinfo is not None


def test_last_status_change_uses_latest_history_row(seed, db):
    seed.complaint(age=timedelta(days=5), last_status_change=timedelta(hours=3))

    candidate = CandidateScanner(db).candidates()[0]

    elapsed = datetime.now(timezone.utc) - candidate.last_status_change_at
    assert timedelta(hours=2, minutes=59) < elapsed < timedelta(hours=3, minutes=1)
    assert candidate.created_at < candidate.last_status_change_at


def test_candidates_are_ordered_oldest_first(seed, db):
    newer = seed.complaint(age=timedelta(hours=1))
    older = seed.complaint(age=timedelta(hours=50))

    candidates = CandidateScanner(db).candidates()

    assert [candidate.complaint_id for candidate in candidates] == [older.id, newer.id]


def test_empty_open_status_list_yields_nothing(seed, db):
    seed.complaint()
    assert CandidateScanner(db, open_statuses=[]).candidates() == []
