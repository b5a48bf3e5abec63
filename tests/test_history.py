from datetime import datetime, timedelta

from history import average_attendance, order_most_recent_first, session_label, summarize
from models import AttendanceRecord

START = datetime(2024, 3, 1, 9, 0)


def record(present, roster_size=10, days=0, record_id=None):
    return AttendanceRecord(
        id=record_id or f"r{days}-{present}",
        captured_at=START + timedelta(days=days),
        present_student_ids=[f"s{i}" for i in range(present)],
        roster_size=roster_size,
        scene_image=b"",
        scene_mime_type="image/jpeg",
    )


def test_average_attendance_example():
    records = [record(10, days=2), record(5, days=1), record(0, days=0)]

    assert average_attendance(records, 10) == 50


def test_average_attendance_without_sessions():
    assert average_attendance([], 10) == 0


def test_average_attendance_with_empty_roster_uses_one():
    assert average_attendance([record(1, roster_size=1)], 0) == 100


def test_summary_counts():
    records = [record(7, days=1), record(4, days=0)]

    summary = summarize(records, 10)

    assert summary.total_students == 10
    assert summary.session_count == 2
    assert summary.average_attendance == 55
    assert summary.last_session_absent == 3


def test_summary_without_records():
    summary = summarize([], 4)

    assert summary.session_count == 0
    assert summary.average_attendance == 0
    assert summary.last_session_absent == 0
    assert summary.trend == []


def test_trend_keeps_most_recent_seven_in_given_order():
    records = order_most_recent_first([record(i % 10, days=i) for i in range(10)])

    trend = summarize(records, 10).trend

    assert len(trend) == 7
    assert [p.present for p in trend] == [9, 8, 7, 6, 5, 4, 3]
    assert trend[0].label == "Mar 10"
    assert trend[0].absent == 1


def test_trend_absent_uses_roster_size_at_capture():
    trend = summarize([record(3, roster_size=5)], 20).trend

    assert trend[0].absent == 2


def test_trend_window_is_configurable():
    records = [record(1, days=d) for d in range(5)]

    assert len(summarize(records, 10, window=3).trend) == 3


def test_session_label():
    assert session_label(datetime(2024, 10, 8)) == "Oct 8"


def test_order_most_recent_first():
    records = [record(1, days=1), record(2, days=3), record(3, days=2)]

    assert [r.present_count for r in order_most_recent_first(records)] == [2, 3, 1]


def test_zero_window_gives_empty_trend():
    records = [record(1, days=d) for d in range(3)]

    assert summarize(records, 10, window=0).trend == []
