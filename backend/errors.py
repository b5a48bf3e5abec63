"""
Exceptions raised along the attendance pipeline.
"""


class AttendanceError(Exception):
    """Base class for every pipeline failure."""


class CaptureDeviceError(AttendanceError):
    """Camera access denied or unavailable."""


class ImageDecodeError(AttendanceError):
    """Image bytes could not be decoded."""


class RecognitionProtocolError(AttendanceError):
    """The recognition service failed or answered outside the declared schema."""


class PersistenceError(AttendanceError):
    """A store could not be opened or written."""


class EmptyRosterError(AttendanceError):
    """A determination was requested with nobody enrolled."""
