import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "15"))
DEFAULT_CAPACITY = os.getenv("DEFAULT_CAPACITY", "1x")
# Roles allowed to run more than one patient per slot (e.g. a supervising admin with parallel chairs).
MULTI_CAPACITY_ROLES = frozenset(
    role.lower() for role in _get_list(os.getenv("MULTI_CAPACITY_ROLES"), ["admin"])
)

# Extra attempts granted to book/reschedule on top of the slot capacity when a
# concurrent writer claims the same seat first.
BOOKING_CONFLICT_RETRIES = int(os.getenv("BOOKING_CONFLICT_RETRIES", "3"))
STORAGE_READ_RETRIES = int(os.getenv("STORAGE_READ_RETRIES", "3"))

# When true, booking treats any active appointment at the requested time as a
# full slot and ignores the capacity multiplier. Rescheduling always honours it.
BOOK_IGNORES_CAPACITY = _get_bool(os.getenv("BOOK_IGNORES_CAPACITY"), default=False)

THROTTLE_WINDOW_SECONDS = int(os.getenv("THROTTLE_WINDOW_SECONDS", "60"))
THROTTLE_MAX_REQUESTS = int(os.getenv("THROTTLE_MAX_REQUESTS", "30"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if DEFAULT_SLOT_DURATION_MINUTES <= 0:
        raise RuntimeError("DEFAULT_SLOT_DURATION_MINUTES must be a positive integer.")
