"""Configuration management for the Detection & Notification Pipeline."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    # Fall back to template for defaults
    template_path = Path(__file__).parent.parent / ".env.template"
    if template_path.exists():
        load_dotenv(template_path)


class Config:
    """Application configuration."""

    # Notification store
    NOTIFICATION_DB_PATH: str | None = os.getenv("NOTIFICATION_DB_PATH")

    # Facility / snapshot source
    FACILITY_ID: str = os.getenv("FACILITY_ID", "default")
    SNAPSHOT_PATH: str | None = os.getenv("SNAPSHOT_PATH")

    # Keyword/tag tables override (JSON file)
    KEYWORD_TABLES_PATH: str | None = os.getenv("KEYWORD_TABLES_PATH")

    # Rule windows
    ABT_REVIEW_DAYS: int = int(os.getenv("ABT_REVIEW_DAYS", "7"))
    IP_REVIEW_DAYS: int = int(os.getenv("IP_REVIEW_DAYS", "14"))
    ADMISSION_WINDOW_HOURS: int = int(os.getenv("ADMISSION_WINDOW_HOURS", "72"))
    SYMPTOM_WINDOW_HOURS: int = int(os.getenv("SYMPTOM_WINDOW_HOURS", "24"))
    ADMISSION_SCREENING_NOTE_TYPE: str = os.getenv(
        "ADMISSION_SCREENING_NOTE_TYPE", "Admission Screening"
    )

    # Outbreak clustering
    CLUSTER_WINDOW_HOURS: int = int(os.getenv("CLUSTER_WINDOW_HOURS", "96"))
    CLUSTER_MIN_RESIDENTS: int = int(os.getenv("CLUSTER_MIN_RESIDENTS", "2"))

    # Influenza season: Oct 1 through May 15, season year rolls over in September
    FLU_SEASON_START: tuple[int, int] = (10, 1)
    FLU_SEASON_END: tuple[int, int] = (5, 15)
    FLU_SEASON_ROLLOVER_MONTH: int = 9

    # Commit retries on concurrent watermark updates
    COMMIT_MAX_ATTEMPTS: int = int(os.getenv("COMMIT_MAX_ATTEMPTS", "3"))

    # Polling settings
    POLL_INTERVAL: int = int(os.getenv("POLL_INTERVAL_SECONDS", "300"))


config = Config()
