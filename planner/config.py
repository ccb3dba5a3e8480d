from __future__ import annotations

import os
import pathlib
import re
from zoneinfo import ZoneInfo

PLANNER_TIMEZONE_NAME = os.getenv("PLANNER_TIMEZONE", "Europe/Paris")
PLANNER_TZ = ZoneInfo(PLANNER_TIMEZONE_NAME)
PLANNER_LOG_LEVEL = os.getenv("PLANNER_LOG_LEVEL", "INFO").upper()

CLOCK_RE = re.compile(r"^([01]\d|2[0-4]):([0-5]\d)$")

# -------------------------
# Google Calendar settings
# -------------------------
ENABLE_GCAL = os.getenv("ENABLE_GCAL", "0") == "1"
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI")
# Calendar that receives the created task blocks.
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GOOGLE_SELECTED_CALENDAR_IDS = [
    cid.strip()
    for cid in os.getenv("GOOGLE_SELECTED_CALENDAR_IDS", "").split(",")
    if cid.strip()
]
GCAL_SCOPES = [
    "openid",
    "profile",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
]
GCAL_EVENT_TIMEZONE = os.getenv("GCAL_EVENT_TIMEZONE", PLANNER_TIMEZONE_NAME)
PROTECTED_MARKERS = ("#lock", "#no-touch", "#prive")

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
GOOGLE_TOKEN_DIR = pathlib.Path(
    os.getenv("GOOGLE_TOKEN_DIR", str(BASE_DIR / "gcal_tokens")))
SESSION_COOKIE_NAME = "gcal_session"
API_BASE = os.getenv("API_BASE", "/api")

# -------------------------
# Allocation engine defaults
# -------------------------
QUARTER_MINUTES = 15
SCAN_STEP_MINUTES = int(os.getenv("PLANNER_SCAN_STEP_MINUTES", "15"))
MERGE_TOLERANCE_MINUTES = 5
# Spacing of interval-fit candidates inside one free interval.
CANDIDATE_STRIDE_MINUTES = 30
DEDUP_WINDOW_MINUTES = 15
SEARCH_LEAD_MINUTES = 30
DEFAULT_HORIZON_DAYS = 14
MAX_HORIZON_DAYS = 30
MAX_GAP_DAYS = 7
SPLIT_THRESHOLD_MINUTES = 60
MAX_ALTERNATIVES = 3
DEFAULT_DURATION_MINUTES = int(
    os.getenv("PLANNER_DEFAULT_DURATION_MINUTES", "60"))

PRIORITY_INTERVAL_FIT = 1
PRIORITY_ANCHOR = 10

# (minimum block minutes, maximum block count); None means the full duration.
SPLIT_STRATEGIES = [
    (None, 1),
    (120, 5),
    (60, 5),
    (30, 10),
]
