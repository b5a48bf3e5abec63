"""
Configuration constants read from the environment.
"""
import os

from dotenv import load_dotenv

load_dotenv()

# Recognition service
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

# Storage
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./attendance.db")

# Image normalization
REFERENCE_MAX_EDGE = int(os.getenv("REFERENCE_MAX_EDGE", "512"))
REFERENCE_JPEG_QUALITY = int(os.getenv("REFERENCE_JPEG_QUALITY", "80"))

# Camera
CAMERA_INDEX = int(os.getenv("CAMERA_INDEX", "0"))
SNAPSHOT_JPEG_QUALITY = int(os.getenv("SNAPSHOT_JPEG_QUALITY", "90"))

# Dashboard
TREND_WINDOW = max(1, int(os.getenv("TREND_WINDOW", "7")))

# Logging
LOG_FILE = os.getenv("LOG_FILE", "attendance.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
