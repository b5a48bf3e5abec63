import base64
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

import config
from attendance import AttendanceDeterminer, take_attendance
from camera_manager import CaptureMode, CaptureSession
from database import Database, RecordStore, StudentStore, generate_id
from errors import (
    CaptureDeviceError,
    EmptyRosterError,
    ImageDecodeError,
    PersistenceError,
    RecognitionProtocolError,
)
from history import summarize
from image_normalizer import normalize_reference_image
from logger_helper import create_logging_middleware, setup_logger
from models import Student, utcnow
from recognition import RecognitionClient

logger = setup_logger()

# Process-wide resources, created in lifespan
database: Optional[Database] = None
student_store: Optional[StudentStore] = None
record_store: Optional[RecordStore] = None
determiner: Optional[AttendanceDeterminer] = None
recognizer: Optional[RecognitionClient] = None
camera: Optional[CaptureSession] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and recognizer on startup, release everything on shutdown."""
    global database, student_store, record_store, determiner, recognizer, camera

    database = Database(config.DATABASE_URL)
    database.open()
    student_store = StudentStore(database)
    record_store = RecordStore(database)
    determiner = AttendanceDeterminer(record_store)
    camera = CaptureSession()

    try:
        recognizer = RecognitionClient()
        logger.info("Recognition client ready (model=%s)", recognizer.model)
    except RecognitionProtocolError as e:
        recognizer = None
        logger.warning("Recognition disabled: %s", e)

    yield

    camera.close()
    database.close()
    logger.info("Shutting down...")


app = FastAPI(
    title="Attendance Scanner",
    description="Classroom attendance from a single photo, matched against enrolled reference photos",
    version="1.0.0",
    lifespan=lifespan
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
create_logging_middleware(app, logger)


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


@app.get("/health")
async def health_check():
    return {
        "status": "running",
        "model": config.GEMINI_MODEL,
        "recognizer_ready": recognizer is not None,
        "camera_mode": camera.mode.value if camera else None,
    }

# Roster Endpoints

@app.post("/students/")
async def add_student(
    name: str = Form(...),
    file: UploadFile = File(...),
    student_id: Optional[str] = Form(None)
):
    """Enroll a student with one reference photo. Reusing an id replaces that student."""
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")

    contents = await file.read()
    try:
        photo = normalize_reference_image(contents)
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    student = Student(
        id=student_id or generate_id(),
        name=name,
        photo=photo.data,
        photo_mime_type=photo.mime_type,
        enrolled_at=utcnow()
    )
    try:
        await student_store.put(student)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save student: {e}")

    logger.info("Enrolled student %s (%s)", student.name, student.id)
    return {
        "message": "Student added successfully",
        "student_id": student.id,
        "name": student.name,
        "photo_size": {"width": photo.width, "height": photo.height}
    }


@app.get("/students/")
async def list_students():
    students = sorted(await student_store.get_all(), key=lambda s: s.name.lower())
    return {
        "students": [
            {
                "id": s.id,
                "name": s.name,
                "photo": to_data_url(s.photo, s.photo_mime_type),
                "enrolled_at": s.enrolled_at.isoformat()
            }
            for s in students
        ]
    }


@app.delete("/students/{student_id}")
async def delete_student(student_id: str):
    try:
        deleted = await student_store.delete(student_id)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Student not found")
    return {"message": "Student removed"}

# Attendance Endpoints

async def run_determination(scene_image: bytes) -> dict:
    """Shared pipeline for uploaded and captured scenes, mapped to HTTP errors."""
    if recognizer is None:
        raise HTTPException(status_code=503, detail="Recognizer not configured")

    roster = await student_store.get_all()
    try:
        result = await take_attendance(roster, scene_image, recognizer, determiner)
    except EmptyRosterError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecognitionProtocolError as e:
        raise HTTPException(status_code=502, detail=f"AI Processing Failed: {e}")
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save attendance: {e}")

    record, outcome = result.record, result.outcome
    return {
        "record_id": record.id,
        "captured_at": record.captured_at.isoformat(),
        "present_names": outcome.present_names,
        "absent_names": outcome.absent_names,
        "present_student_ids": record.present_student_ids,
        "present_count": record.present_count,
        "absent_count": record.absent_count,
        "roster_size": record.roster_size,
        "confidence": outcome.confidence,
        "reasoning": outcome.reasoning
    }


@app.post("/attendance/")
async def analyze_upload(file: UploadFile = File(...)):
    """Run attendance on an uploaded classroom photo."""
    return await run_determination(await file.read())


@app.post("/attendance/capture")
async def analyze_capture():
    """Run attendance on a snapshot from the live camera."""
    try:
        scene_image = await run_in_threadpool(camera.snapshot)
    except CaptureDeviceError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return await run_determination(scene_image)


@app.get("/attendance/")
async def list_attendance(limit: Optional[int] = None):
    """Attendance history, most recent first."""
    records = await record_store.get_all()
    if limit is not None:
        records = records[:max(limit, 0)]
    return {
        "attendance": [
            {
                "id": r.id,
                "captured_at": r.captured_at.isoformat(),
                "present_student_ids": r.present_student_ids,
                "present_count": r.present_count,
                "roster_size": r.roster_size,
                "confidence": r.confidence,
                "note": r.note,
                "image": to_data_url(r.scene_image, r.scene_mime_type)
            }
            for r in records
        ]
    }


@app.get("/dashboard")
async def dashboard():
    students = await student_store.get_all()
    records = await record_store.get_all()
    return asdict(summarize(records, len(students)))

# Camera Endpoints

@app.post("/camera/mode")
async def set_camera_mode(mode: str = Form(...)):
    try:
        requested = CaptureMode(mode)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid camera mode: {mode}")

    current = await run_in_threadpool(camera.set_mode, requested)
    return {
        "mode": current.value,
        "fallback": current != requested,
        "error": str(camera.last_error) if camera.last_error else None
    }


@app.get("/camera/frame")
async def get_camera_frame():
    """Single JPEG preview frame."""
    try:
        frame = await run_in_threadpool(camera.snapshot)
    except CaptureDeviceError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return Response(
        content=frame,
        media_type="image/jpeg",
        headers={"Cache-Control": "no-store, must-revalidate"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
