"""
Database lifecycle and the two collection stores.

One engine is opened at startup and disposed at shutdown. Store operations
run the blocking SQLAlchemy work in the threadpool so the event loop stays free.
"""
import uuid
from contextlib import contextmanager
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from errors import PersistenceError
from history import order_most_recent_first
from logger_helper import get_logger
from models import AttendanceRecord, Base, Student

logger = get_logger("database")


def generate_id() -> str:
    return uuid.uuid4().hex


class Database:
    """Owns the engine and hands out sessions."""

    def __init__(self, url: str):
        self.url = url
        self.engine = None
        self._sessionmaker: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def open(self):
        if self.is_open:
            return
        kwargs = {}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}  # Needed for SQLite
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                # Keep one connection so the in-memory database survives
                kwargs["poolclass"] = StaticPool
        try:
            self.engine = create_engine(self.url, **kwargs)
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            self.engine = None
            raise PersistenceError(f"Failed to open database {self.url}: {e}") from e
        self._sessionmaker = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )
        logger.info("Database opened: %s", self.url)

    def close(self):
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database closed")
        self.engine = None
        self._sessionmaker = None

    @contextmanager
    def session(self):
        """Session that commits on success and rolls back on any error."""
        if not self.is_open:
            raise PersistenceError("Database is not open")
        db = self._sessionmaker()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class StudentStore:
    """Roster collection keyed by Student.id."""

    def __init__(self, database: Database):
        self.database = database

    def _put(self, student: Student) -> Student:
        with self.database.session() as db:
            # merge() makes re-enrollment with a known id replace the row
            db.merge(student)
        return student

    async def put(self, student: Student) -> Student:
        try:
            return await run_in_threadpool(self._put, student)
        except SQLAlchemyError as e:
            logger.error("Failed to save student %s: %s", student.id, e)
            raise PersistenceError(f"Failed to save student: {e}") from e

    def _get_all(self) -> List[Student]:
        with self.database.session() as db:
            return db.query(Student).all()

    async def get_all(self) -> List[Student]:
        """Full roster. Read failures degrade to an empty roster."""
        try:
            return await run_in_threadpool(self._get_all)
        except (SQLAlchemyError, PersistenceError) as e:
            logger.error("Failed to list students: %s", e)
            return []

    def _delete(self, student_id: str) -> bool:
        with self.database.session() as db:
            student = db.get(Student, student_id)
            if student is None:
                return False
            db.delete(student)
            return True

    async def delete(self, student_id: str) -> bool:
        try:
            return await run_in_threadpool(self._delete, student_id)
        except SQLAlchemyError as e:
            logger.error("Failed to delete student %s: %s", student_id, e)
            raise PersistenceError(f"Failed to delete student: {e}") from e


class RecordStore:
    """Attendance history keyed by AttendanceRecord.id. No update or delete path."""

    def __init__(self, database: Database):
        self.database = database

    def _put(self, record: AttendanceRecord) -> AttendanceRecord:
        with self.database.session() as db:
            db.merge(record)
        return record

    async def put(self, record: AttendanceRecord) -> AttendanceRecord:
        """Idempotent by record id: repeating the same write stores one row."""
        try:
            return await run_in_threadpool(self._put, record)
        except SQLAlchemyError as e:
            logger.error("Failed to save attendance record %s: %s", record.id, e)
            raise PersistenceError(f"Failed to save attendance record: {e}") from e

    def _get_all(self) -> List[AttendanceRecord]:
        with self.database.session() as db:
            return db.query(AttendanceRecord).all()

    async def get_all(self) -> List[AttendanceRecord]:
        """History, most recent first. Read failures degrade to an empty history."""
        try:
            records = await run_in_threadpool(self._get_all)
        except (SQLAlchemyError, PersistenceError) as e:
            logger.error("Failed to list attendance history: %s", e)
            return []
        return order_most_recent_first(records)
