import pathlib
import sys
from datetime import date, datetime

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from grasp.activity_log import (
    ActivityLog,
    CompletionEvent,
    RevisitEvent,
    longest_week_run,
    week_key,
    week_start,
)


def test_week_key_uses_iso_weeks():
    assert week_key(date(2025, 2, 12)) == "2025-W07"
    # 2024-12-30 belongs to ISO week 1 of 2025.
    assert week_key(datetime(2024, 12, 30, 9, 0)) == "2025-W01"


def test_week_start_rejects_malformed_keys():
    assert week_start("2025-W07") == date(2025, 2, 10)
    assert week_start("not a week") is None
    assert week_start("2025-W99") is None
    assert week_start(None) is None


def test_longest_week_run_spans_year_boundary():
    assert longest_week_run(["2020-W52", "2020-W53", "2021-W01", "2021-W02"]) == 4
    assert longest_week_run(["2025-W01", "2025-W03"]) == 1
    assert longest_week_run(["2025-W01", "2025-W02", "2025-W02", "garbage"]) == 2
    assert longest_week_run([]) == 0


def test_appended_returns_a_new_log():
    log = ActivityLog()
    event = CompletionEvent(actor_id=1, quiz_id=3, completed_at=datetime(2025, 3, 3), score=80)
    grown = log.appended(event)
    assert log.completions == ()
    assert grown.completions == (event,)
    grown = grown.appended(RevisitEvent(actor_id=1, quiz_id=3, revisited_at=datetime(2025, 3, 5)))
    assert len(grown.revisits) == 1


def test_weekly_index_groups_distinct_quizzes():
    log = ActivityLog.from_events(
        [
            CompletionEvent(actor_id=1, quiz_id=1, completed_at=datetime(2025, 3, 3)),
            CompletionEvent(actor_id=1, quiz_id=1, completed_at=datetime(2025, 3, 4)),
            CompletionEvent(actor_id=1, quiz_id=2, completed_at=datetime(2025, 3, 7)),
            CompletionEvent(actor_id=1, quiz_id=4, completed_at=datetime(2025, 3, 12)),
            CompletionEvent(actor_id=1, quiz_id=5),
        ]
    )
    assert log.weekly_index() == {
        "2025-W10": frozenset({1, 2}),
        "2025-W11": frozenset({4}),
    }
