import logging
import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

DEFAULT_TIMEZONE = "UTC"
DEFAULT_FELLOW_JOB_TYPE = "FEL"
SELF_CLAIM_NOTE = "Self-claimed via email link"
SELF_CANCEL_REASON = "Self-cancelled via claim portal"


@dataclass(frozen=True)
class Settings:
    timezone: ZoneInfo
    fellow_job_type_code: str = DEFAULT_FELLOW_JOB_TYPE
    log_level: str = "INFO"


def load_env(dotenv_path: str | Path | None = None) -> None:
    path = Path(dotenv_path) if dotenv_path else None
    if path and path.exists():
        load_dotenv(path)
        return
    load_dotenv()


def load_settings() -> Settings:
    tz_name = os.getenv("STRIKEPLAN_TIMEZONE", DEFAULT_TIMEZONE).strip()
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(
            f"STRIKEPLAN_TIMEZONE names an unknown timezone: {tz_name!r}"
        ) from exc

    fellow = os.getenv("STRIKEPLAN_FELLOW_JOB_TYPE", DEFAULT_FELLOW_JOB_TYPE)
    level = os.getenv("STRIKEPLAN_LOG_LEVEL", "INFO").strip().upper()
    return Settings(
        timezone=tz,
        fellow_job_type_code=fellow.strip() or DEFAULT_FELLOW_JOB_TYPE,
        log_level=level or "INFO",
    )


def default_settings() -> Settings:
    return Settings(timezone=ZoneInfo(DEFAULT_TIMEZONE))


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
