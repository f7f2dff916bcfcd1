import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_scheduling.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DEBUG_ERRORS = _get_bool(os.getenv("DEBUG_ERRORS"), default=False)

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:8080"])


DEFAULT_SLOT_GRANULARITY_MINUTES = int(os.getenv("DEFAULT_SLOT_GRANULARITY_MINUTES", "15"))
CONFLICT_WINDOW_HOURS = int(os.getenv("CONFLICT_WINDOW_HOURS", "24"))
MAX_APPOINTMENT_MINUTES = int(os.getenv("MAX_APPOINTMENT_MINUTES", "480"))
MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "600"))

BULK_MAX_IDS = int(os.getenv("BULK_MAX_IDS", "500"))

OPERATING_HOURS_START = int(os.getenv("OPERATING_HOURS_START", "8"))
OPERATING_HOURS_END = int(os.getenv("OPERATING_HOURS_END", "18"))

STRICT_STATUS_TRANSITIONS = _get_bool(os.getenv("STRICT_STATUS_TRANSITIONS"), default=True)
ENFORCE_AVAILABILITY_WINDOW = _get_bool(os.getenv("ENFORCE_AVAILABILITY_WINDOW"), default=False)

DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "50"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "200"))


def validate_runtime_config() -> None:
    if MAX_APPOINTMENT_MINUTES > CONFLICT_WINDOW_HOURS * 60:
        raise RuntimeError("MAX_APPOINTMENT_MINUTES must fit inside CONFLICT_WINDOW_HOURS.")
    if DEFAULT_SLOT_GRANULARITY_MINUTES <= 0:
        raise RuntimeError("DEFAULT_SLOT_GRANULARITY_MINUTES must be positive.")
    if not 0 <= OPERATING_HOURS_START <= OPERATING_HOURS_END <= 23:
        raise RuntimeError("OPERATING_HOURS_START/END must be hours with START <= END.")
