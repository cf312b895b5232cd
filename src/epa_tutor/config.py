"""Runtime settings loaded from environment variables / .env file."""
import logging
import os
import sys
from dataclasses import dataclass

from dotenv import load_dotenv

from epa_tutor.db import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-1.5-flash"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


@dataclass(frozen=True)
class Settings:
    db_path: str = DEFAULT_DB_PATH
    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_MODEL
    gemini_base_url: str = DEFAULT_BASE_URL
    request_timeout: float = 30.0
    max_output_tokens: int = 1000
    log_level: str = "WARNING"


def _number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def load_settings() -> Settings:
    load_dotenv(override=False)
    return Settings(
        db_path=os.path.expanduser(os.environ.get("EPA_TUTOR_DB", DEFAULT_DB_PATH)),
        gemini_api_key=os.environ.get("GEMINI_API_KEY", "").strip(),
        gemini_model=os.environ.get("GEMINI_MODEL", DEFAULT_MODEL),
        gemini_base_url=os.environ.get("GEMINI_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        request_timeout=_number("GEMINI_TIMEOUT", 30.0, float),
        max_output_tokens=_number("GEMINI_MAX_OUTPUT_TOKENS", 1000, int),
        log_level=os.environ.get("EPA_TUTOR_LOG_LEVEL", "WARNING").upper(),
    )


def configure_logging(level: str = "WARNING") -> None:
    """Send log records to stderr so they stay out of the console UI."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
