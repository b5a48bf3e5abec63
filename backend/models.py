"""
SQLAlchemy models for the attendance system.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, JSON, LargeBinary, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Student(Base):
    """Enrolled roster member with one reference photo."""
    __tablename__ = "students"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)  # Display name, not unique
    photo = Column(LargeBinary, nullable=False)
    photo_mime_type = Column(String, nullable=False, default="image/jpeg")
    enrolled_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Student id={self.id!r} name={self.name!r}>"


class AttendanceRecord(Base):
    """Outcome of one determination. Written once, never updated."""
    __tablename__ = "attendance_records"

    id = Column(String, primary_key=True)
    captured_at = Column(DateTime, nullable=False, default=utcnow)
    present_student_ids = Column(JSON, nullable=False, default=list)
    roster_size = Column(Integer, nullable=False)  # Roster size at capture time
    scene_image = Column(LargeBinary, nullable=False)
    scene_mime_type = Column(String, nullable=False, default="image/jpeg")
    confidence = Column(String, nullable=True)
    note = Column(Text, nullable=True)

    @property
    def present_count(self) -> int:
        return len(self.present_student_ids or [])

    @property
    def absent_count(self) -> int:
        return self.roster_size - self.present_count

    def __repr__(self):
        return (f"<AttendanceRecord id={self.id!r} captured_at={self.captured_at} "
                f"present={self.present_count}/{self.roster_size}>")
