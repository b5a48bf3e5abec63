"""
Presence recognition through the Gemini vision-language API.
Builds the labeled multi-part request and validates the structured reply.
"""
from typing import List, Optional, Sequence

from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, ValidationError

import config
from errors import EmptyRosterError, RecognitionProtocolError
from logger_helper import get_logger
from models import Student

logger = get_logger("recognition")

REFERENCE_DELIMITER = "--- END OF REFERENCE PHOTOS ---"
TARGET_LABEL = "TARGET IMAGE TO ANALYZE:"

INSTRUCTIONS = """
You are an AI Attendance Officer.
1. I have provided reference photos for {count} students above.
2. The last image provided is the 'Target Image' (Classroom or CCTV capture).
3. Compare the faces in the Target Image against the Reference Photos.
4. Identify which enrolled students are present in the Target Image.
5. Return the result in JSON format with lists of names.

If a face in the target image closely matches a reference photo, mark them as present.
If a student from the reference list is not found, mark them as absent.
"""

RESPONSE_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "presentNames": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(type=types.Type.STRING),
            description="List of names of students found in the target image",
        ),
        "absentNames": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(type=types.Type.STRING),
            description="List of names of students NOT found in the target image",
        ),
        "confidence": types.Schema(
            type=types.Type.STRING,
            description="High, Medium, or Low confidence in the overall analysis",
        ),
        "reasoning": types.Schema(
            type=types.Type.STRING,
            description="Brief explanation of the finding (e.g., 'Found 3 matching faces, lighting was clear')",
        ),
    },
    required=["presentNames", "absentNames"],
)


class RecognitionOutcome(BaseModel):
    """Structured reply of the recognition service. Never persisted as-is."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    present_names: List[str] = Field(alias="presentNames")
    absent_names: List[str] = Field(alias="absentNames")
    confidence: Optional[str] = None
    reasoning: Optional[str] = None


def reference_label(student: Student) -> str:
    return f'Reference Photo for Student Name: "{student.name}" (ID: {student.id})'


def build_parts(
    roster: Sequence[Student],
    scene_image: bytes,
    scene_mime_type: str = "image/jpeg"
) -> List[types.Part]:
    """
    Request parts in order: one (label, photo) pair per student, the delimiter,
    the target image and the trailing instructions.
    """
    parts = []
    for student in roster:
        parts.append(types.Part.from_text(text=reference_label(student)))
        parts.append(types.Part.from_bytes(data=student.photo, mime_type=student.photo_mime_type))

    parts.append(types.Part.from_text(text=REFERENCE_DELIMITER))
    parts.append(types.Part.from_text(text=TARGET_LABEL))
    parts.append(types.Part.from_bytes(data=scene_image, mime_type=scene_mime_type))
    parts.append(types.Part.from_text(text=INSTRUCTIONS.format(count=len(roster))))
    return parts


def parse_outcome(text: Optional[str]) -> RecognitionOutcome:
    """Validate the raw response body. Anything but a conforming JSON object is rejected."""
    if not text or not text.strip():
        raise RecognitionProtocolError("No response from recognition service")
    try:
        return RecognitionOutcome.model_validate_json(text)
    except ValidationError as e:
        raise RecognitionProtocolError(f"Malformed recognition response: {e}") from e


class RecognitionClient:
    """
    Thin async wrapper around the Gemini client.
    Does not retry: a failed call is reported once to the caller.
    """

    def __init__(self, client=None, api_key: Optional[str] = None, model: Optional[str] = None):
        """
        Args:
            client: Pre-built ``genai.Client`` (or compatible); built from api_key if omitted
            api_key: Gemini API key, defaults to config
            model: Model name, defaults to config
        """
        self.model = model or config.GEMINI_MODEL
        if client is None:
            api_key = api_key or config.GEMINI_API_KEY
            if not api_key:
                raise RecognitionProtocolError("API Key not found")
            client = genai.Client(api_key=api_key)
        self._client = client

    def build_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=RESPONSE_SCHEMA,
        )

    async def determine_presence(
        self,
        roster: Sequence[Student],
        scene_image: bytes,
        scene_mime_type: str = "image/jpeg"
    ) -> RecognitionOutcome:
        """
        Ask the service which roster members appear in the scene.

        Raises:
            EmptyRosterError: roster is empty; callers should short-circuit before this
            RecognitionProtocolError: transport failure or non-conforming response
        """
        if not roster:
            raise EmptyRosterError("Cannot run recognition without enrolled students")

        contents = [types.Content(role="user", parts=build_parts(roster, scene_image, scene_mime_type))]
        logger.info("Requesting presence for %d students from %s", len(roster), self.model)

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=self.build_config(),
            )
        except Exception as e:
            logger.error("Recognition request failed: %s", e)
            raise RecognitionProtocolError(f"Recognition request failed: {e}") from e

        outcome = parse_outcome(getattr(response, "text", None))
        logger.info(
            "Recognition returned %d present, %d absent (confidence=%s)",
            len(outcome.present_names), len(outcome.absent_names), outcome.confidence
        )
        return outcome
