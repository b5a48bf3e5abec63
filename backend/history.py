"""
Dashboard statistics over the attendance history.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Sequence

import config
from models import AttendanceRecord


@dataclass
class TrendPoint:
    label: str
    present: int
    absent: int


@dataclass
class HistorySummary:
    total_students: int
    session_count: int
    average_attendance: int
    last_session_absent: int
    trend: List[TrendPoint] = field(default_factory=list)


def session_label(captured_at: datetime) -> str:
    """Short date label, e.g. ``Oct 18``."""
    return f"{captured_at:%b} {captured_at.day}"


def order_most_recent_first(records: Sequence[AttendanceRecord]) -> List[AttendanceRecord]:
    return sorted(records, key=lambda r: r.captured_at, reverse=True)


def average_attendance(records: Sequence[AttendanceRecord], roster_size: int) -> int:
    """Percentage of present marks over all sessions, against the current roster size."""
    if not records:
        return 0
    total_present = sum(r.present_count for r in records)
    return round(100 * total_present / (len(records) * max(roster_size, 1)))


def summarize(
    records: Sequence[AttendanceRecord],
    roster_size: int,
    window: int = None
) -> HistorySummary:
    """
    Args:
        records: History ordered most recent first; order is kept as given
        roster_size: Current number of enrolled students
        window: Number of recent sessions in the trend series
    """
    if window is None:
        window = config.TREND_WINDOW
    trend = [
        TrendPoint(label=session_label(r.captured_at), present=r.present_count, absent=r.absent_count)
        for r in records[:window]
    ]
    return HistorySummary(
        total_students=roster_size,
        session_count=len(records),
        average_attendance=average_attendance(records, roster_size),
        last_session_absent=records[0].absent_count if records else 0,
        trend=trend,
    )
