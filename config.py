"""
Configuration module for the Predica sermon coach backend.

This module centralizes all configuration settings for the service,
loading values from environment variables with sensible defaults.
"""
import os
import sys
import logging
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from loguru import logger as _loguru_logger

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# Paths
BASE_DIR = Path(__file__).resolve().parent

# API Keys and Authentication
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

# OpenAI Configuration
OPENAI_COMPLETION_MODEL = os.getenv("OPENAI_COMPLETION_MODEL", "gpt-4o")
OPENAI_TRANSCRIPTION_MODEL = os.getenv("OPENAI_TRANSCRIPTION_MODEL", "whisper-1")
OPENAI_TTS_MODEL = os.getenv("OPENAI_TTS_MODEL", "tts-1")
OPENAI_TTS_VOICE = os.getenv("OPENAI_TTS_VOICE", "alloy")

# Storage
DATABASE_URL = os.getenv("PREDICA_DB_URL", f"sqlite:///{BASE_DIR / 'database.sqlite'}")
PROMPTS_FILE = Path(os.getenv("PREDICA_PROMPTS_FILE", str(BASE_DIR / "prompts.json")))
QUESTIONS_FILE = Path(os.getenv("PREDICA_QUESTIONS_FILE", str(BASE_DIR / "preguntas.json")))
UPLOAD_DIR = Path(os.getenv("PREDICA_UPLOAD_DIR", str(BASE_DIR / "uploads")))
PUBLIC_DIR = Path(os.getenv("PREDICA_PUBLIC_DIR", str(BASE_DIR / "public")))

# Transcription pipeline
TRANSCRIPTION_MAX_ATTEMPTS = int(os.getenv("TRANSCRIPTION_MAX_ATTEMPTS", "3"))
TRANSCRIPTION_BACKOFF_SECONDS = float(os.getenv("TRANSCRIPTION_BACKOFF_SECONDS", "1.0"))
MIN_CONVERTED_AUDIO_BYTES = int(os.getenv("MIN_CONVERTED_AUDIO_BYTES", "1000"))
FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")

# Section state
MAX_SECTION_SESSIONS = int(os.getenv("MAX_SECTION_SESSIONS", "1000"))

# Server
PORT = int(os.getenv("PORT", "3000"))
ALLOWED_ORIGINS: List[str] = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("PREDICA_LOG_LEVEL", "INFO").upper()


def setup_logging(level: str | None = None) -> None:
    """Configure stdlib logging and the loguru sink used by the HTTP layer."""
    level = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    _loguru_logger.remove()
    _loguru_logger.add(
        sys.stderr,
        level=level,
        format="[{time:YYYY-MM-DD HH:mm:ss}] [{level}] {name}: {message}",
    )


# Check for required environment variables
def _check_required_env_vars() -> None:
    """Warn about environment variables the provider calls depend on."""
    if not OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set - transcription and evaluation will not work")


_check_required_env_vars()
