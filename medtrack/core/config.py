import os

from medtrack.core.env import load_env

load_env()

MEDTRACK_STORAGE = os.getenv("MEDTRACK_STORAGE", "sqlite").lower()
MEDTRACK_DB_PATH = os.getenv("MEDTRACK_DB_PATH", "")  # empty -> medtrack/db/medtrack.db

PRE_REMINDER_MINUTES = int(os.getenv("PRE_REMINDER_MINUTES", "15"))
DEFAULT_SCHEDULE_DAYS = int(os.getenv("DEFAULT_SCHEDULE_DAYS", "365"))
MONTHLY_LOOKAHEAD = int(os.getenv("MONTHLY_LOOKAHEAD", "3"))
DEFAULT_GOAL_REMINDER_TIME = os.getenv("DEFAULT_GOAL_REMINDER_TIME", "09:00")

TREAT_OVERDUE_AS_MISSED = os.getenv("TREAT_OVERDUE_AS_MISSED", "false").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
