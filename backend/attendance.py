"""
Turns a recognition outcome into a persisted attendance record.
"""
import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import List, Sequence

from database import RecordStore, generate_id
from errors import EmptyRosterError
from image_normalizer import NormalizedImage, prepare_scene_image
from logger_helper import get_logger
from models import AttendanceRecord, Student, utcnow
from recognition import RecognitionClient, RecognitionOutcome

logger = get_logger("attendance")


@dataclass
class Determination:
    record: AttendanceRecord
    outcome: RecognitionOutcome


def resolve_present_ids(roster: Sequence[Student], outcome: RecognitionOutcome) -> List[str]:
    """
    Ids of roster members whose display name appears in ``present_names``.

    Matching is exact and case-sensitive. Every student sharing a matched name
    is marked present; names not on the roster are ignored. ``absent_names``
    is informational only.
    """
    present = set(outcome.present_names)
    name_counts = Counter(student.name for student in roster)

    for name, count in name_counts.items():
        if count > 1 and name in present:
            logger.warning(
                "Name %r is shared by %d students; all of them are marked present", name, count
            )

    ids = []
    for student in roster:
        if student.name in present and student.id not in ids:
            ids.append(student.id)

    unknown = present.difference(name_counts)
    if unknown:
        logger.info("Ignoring names not on the roster: %s", sorted(unknown))
    return ids


def build_record(
    roster: Sequence[Student],
    outcome: RecognitionOutcome,
    scene: NormalizedImage
) -> AttendanceRecord:
    return AttendanceRecord(
        id=generate_id(),
        captured_at=utcnow(),
        present_student_ids=resolve_present_ids(roster, outcome),
        roster_size=len(roster),
        scene_image=scene.data,
        scene_mime_type=scene.mime_type,
        confidence=outcome.confidence,
        note=outcome.reasoning,
    )


class AttendanceDeterminer:
    """Only writer of attendance records."""

    def __init__(self, record_store: RecordStore):
        self.record_store = record_store

    async def resolve(
        self,
        roster: Sequence[Student],
        outcome: RecognitionOutcome,
        scene: NormalizedImage
    ) -> AttendanceRecord:
        record = build_record(roster, outcome, scene)
        # The write completes even if the requester goes away mid-call
        await asyncio.shield(self.record_store.put(record))
        logger.info(
            "Saved attendance record %s: %d/%d present",
            record.id, record.present_count, record.roster_size
        )
        return record


async def take_attendance(
    roster: Sequence[Student],
    scene_image: bytes,
    recognizer: RecognitionClient,
    determiner: AttendanceDeterminer
) -> Determination:
    """
    One full determination: validate the scene, recognize, record.

    Nothing is written unless recognition succeeds.

    Raises:
        EmptyRosterError: nobody is enrolled; the recognizer is not called
        ImageDecodeError: the scene image does not decode
        RecognitionProtocolError: the recognition call failed
        PersistenceError: the record could not be saved
    """
    if not roster:
        raise EmptyRosterError("No students enrolled")

    scene = prepare_scene_image(scene_image)
    outcome = await recognizer.determine_presence(roster, scene.data, scene.mime_type)
    record = await determiner.resolve(roster, outcome, scene)
    return Determination(record=record, outcome=outcome)
