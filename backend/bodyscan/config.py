"""Runtime configuration for BodyScan.

All settings come from environment variables (optionally loaded from a
``.env`` file) so thresholds can be tuned per deployment without code
changes.
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


# ============================================================================
# APPLICATION
# ============================================================================

APP_NAME = os.getenv("APP_NAME", "BodyScan")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _env_int("PORT", 8000)
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

# Base URL used when building scan links handed to subjects
APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")

# Empty string disables the file handler
LOG_FILE = os.getenv("LOG_FILE", "logs/bodyscan.log")


# ============================================================================
# SCAN SESSIONS
# ============================================================================

SCAN_TTL_HOURS = _env_float("SCAN_TTL_HOURS", 24.0)
LINK_CODE_LENGTH = _env_int("LINK_CODE_LENGTH", 8)
MIN_LINK_CODE_LENGTH = 6


# ============================================================================
# MEASUREMENT PIPELINE
# ============================================================================

CONFIDENCE_THRESHOLD = _env_float("BODYSCAN_CONFIDENCE_THRESHOLD", 0.70)
MIN_MANUAL_FIELDS = _env_int("MIN_MANUAL_FIELDS", 3)
CALIBRATION_MIN_VISIBILITY = _env_float("CALIBRATION_MIN_VISIBILITY", 0.5)
SIDE_MIN_VISIBILITY = _env_float("SIDE_MIN_VISIBILITY", 0.5)

# Photos larger than this (longest edge, px) are downscaled before detection
MAX_IMAGE_DIMENSION = _env_int("MAX_IMAGE_DIMENSION", 1920)
