from __future__ import annotations

import hashlib
import json
import logging
import pathlib
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from fastapi import Request
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import (
    ENABLE_GCAL,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
    GOOGLE_CALENDAR_ID,
    GOOGLE_SELECTED_CALENDAR_IDS,
    GCAL_SCOPES,
    GCAL_EVENT_TIMEZONE,
    GOOGLE_TOKEN_DIR,
    PLANNER_TZ,
    PROTECTED_MARKERS,
    SESSION_COOKIE_NAME,
)
from .models import Block, BusyInterval, TimeWindow
from .utils import ensure_aware, parse_google_datetime

logger = logging.getLogger(__name__)


class GatewayError(Exception):

  def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
    super().__init__(message)
    self.cause = cause


class CalendarGateway(Protocol):

  def get_busy_intervals(self, window: TimeWindow) -> List[BusyInterval]:
    ...

  def create_event(self, block: Block, metadata: Dict[str, Any]) -> str:
    ...

  def delete_event(self, event_id: str) -> None:
    ...


def is_protected_text(*texts: Optional[str]) -> bool:
  for text in texts:
    lowered = (text or "").lower()
    if any(marker in lowered for marker in PROTECTED_MARKERS):
      return True
  return False


# -------------------------
# In-memory gateway
# -------------------------
class InMemoryCalendarGateway:
  """Busy set held in memory; created events become busy intervals."""

  def __init__(self, busy: Optional[List[BusyInterval]] = None) -> None:
    self.busy: List[BusyInterval] = list(busy or [])
    self.events: Dict[str, BusyInterval] = {}
    self._next_id = 1

  def get_busy_intervals(self, window: TimeWindow) -> List[BusyInterval]:
    intervals = self.busy + list(self.events.values())
    return sorted((b for b in intervals
                   if b.start < window.end and window.start < b.end),
                  key=lambda b: b.start)

  def create_event(self, block: Block, metadata: Dict[str, Any]) -> str:
    event_id = f"local-{self._next_id}"
    self._next_id += 1
    self.events[event_id] = BusyInterval(
        start=block.start,
        end=block.end,
        title=block.title or metadata.get("title"),
        protected=is_protected_text(block.title, metadata.get("description")),
    )
    return event_id

  def delete_event(self, event_id: str) -> None:
    if self.events.pop(event_id, None) is None:
      raise GatewayError(f"event {event_id} not found")


# -------------------------
# Google Calendar gateway
# -------------------------
def is_gcal_configured() -> bool:
  return bool(ENABLE_GCAL and GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET
              and GOOGLE_REDIRECT_URI)


def _session_key(session_id: str) -> str:
  return hashlib.sha256(session_id.encode("utf-8")).hexdigest()


def _session_token_path(session_id: str) -> pathlib.Path:
  return GOOGLE_TOKEN_DIR / f"token_{_session_key(session_id)}.json"


def load_gcal_token_for_session(session_id: Optional[str]) -> Optional[Dict[str, Any]]:
  if not session_id:
    return None
  path = _session_token_path(session_id)
  if not path.exists():
    return None
  try:
    with path.open("r", encoding="utf-8") as f:
      return json.load(f)
  except (OSError, ValueError) as exc:
    logger.warning("unreadable token file %s: %s", path, exc)
    return None


def save_gcal_token_for_session(session_id: str, data: Dict[str, Any]) -> None:
  if not session_id:
    return
  GOOGLE_TOKEN_DIR.mkdir(parents=True, exist_ok=True)
  path = _session_token_path(session_id)
  path.write_text(json.dumps(data, ensure_ascii=False, indent=2),
                  encoding="utf-8")


def _normalize_session_id(raw: Optional[str]) -> Optional[str]:
  if not isinstance(raw, str):
    return None
  value = raw.strip()
  if not value or len(value) > 512:
    return None
  return value


def get_session_id(request: Request) -> Optional[str]:
  return _normalize_session_id(request.cookies.get(SESSION_COOKIE_NAME))


def get_google_session_id(request: Request) -> Optional[str]:
  """Session id of a caller holding a stored Google token, else None."""
  if not ENABLE_GCAL:
    return None
  session_id = get_session_id(request)
  if not session_id:
    return None
  if load_gcal_token_for_session(session_id) is None:
    return None
  return session_id


def get_gcal_service(session_id: str):
  if not is_gcal_configured():
    raise GatewayError("Google Calendar is not configured.")

  token_data = load_gcal_token_for_session(session_id)
  if not token_data:
    raise GatewayError("Google OAuth token not found for this session.")

  try:
    creds = Credentials.from_authorized_user_info(token_data, GCAL_SCOPES)
    if creds.expired and creds.refresh_token:
      creds.refresh(GoogleRequest())
      save_gcal_token_for_session(session_id, json.loads(creds.to_json()))
  except (GoogleAuthError, ValueError) as exc:
    raise GatewayError(f"Google credentials rejected: {exc}", exc) from exc

  return build("calendar", "v3", credentials=creds, cache_discovery=False)


def list_google_calendars(service) -> List[Dict[str, Any]]:
  calendars: List[Dict[str, Any]] = []
  page_token: Optional[str] = None
  while True:
    response = service.calendarList().list(pageToken=page_token).execute()
    for raw in response.get("items", []):
      if not isinstance(raw, dict) or raw.get("deleted"):
        continue
      calendar_id = raw.get("id")
      if not isinstance(calendar_id, str) or not calendar_id.strip():
        continue
      calendars.append({
          "id": calendar_id,
          "summary": raw.get("summary"),
          "primary": bool(raw.get("primary")),
          "access_role": raw.get("accessRole"),
      })
    page_token = response.get("nextPageToken")
    if not page_token:
      break
  return calendars


def _convert_gcal_time(obj: Any) -> Optional[datetime]:
  if not isinstance(obj, dict):
    return None
  parsed = parse_google_datetime(obj.get("dateTime"))
  if parsed is not None:
    return parsed
  date_value = obj.get("date")
  if isinstance(date_value, str):
    try:
      day = datetime.strptime(date_value, "%Y-%m-%d")
    except ValueError:
      return None
    return day.replace(tzinfo=PLANNER_TZ)
  return None


def busy_from_gcal_event(raw: Dict[str, Any],
                         calendar_id: Optional[str]) -> Optional[BusyInterval]:
  if raw.get("status") == "cancelled":
    return None
  start = _convert_gcal_time(raw.get("start"))
  end = _convert_gcal_time(raw.get("end"))
  if start is None or end is None or end < start:
    return None
  summary = raw.get("summary")
  return BusyInterval(
      start=start,
      end=end,
      protected=is_protected_text(summary, raw.get("description")),
      calendar_id=calendar_id,
      title=summary,
  )


def _select_calendar_ids(available: List[Dict[str, Any]],
                         selected: List[str]) -> List[str]:
  known = [c["id"] for c in available]
  if selected:
    chosen = [cid for cid in selected if cid in known]
    if chosen:
      return chosen
    logger.warning("none of the %d selected calendars exist, using all %d",
                   len(selected), len(known))
  return known


class GoogleCalendarGateway:

  def __init__(self,
               session_id: str,
               selected_calendar_ids: Optional[List[str]] = None,
               target_calendar_id: Optional[str] = None,
               service=None) -> None:
    self.session_id = session_id
    self.selected_calendar_ids = (list(selected_calendar_ids)
                                  if selected_calendar_ids is not None
                                  else list(GOOGLE_SELECTED_CALENDAR_IDS))
    self.target_calendar_id = target_calendar_id or GOOGLE_CALENDAR_ID
    self._service = service

  @property
  def service(self):
    if self._service is None:
      self._service = get_gcal_service(self.session_id)
    return self._service

  def _list_events(self, calendar_id: str, window: TimeWindow) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    page_token: Optional[str] = None
    while True:
      response = self.service.events().list(
          calendarId=calendar_id,
          timeMin=ensure_aware(window.start).isoformat(),
          timeMax=ensure_aware(window.end).isoformat(),
          singleEvents=True,
          orderBy="startTime",
          pageToken=page_token,
      ).execute()
      items.extend(i for i in response.get("items", []) if isinstance(i, dict))
      page_token = response.get("nextPageToken")
      if not page_token:
        break
    return items

  def get_busy_intervals(self, window: TimeWindow) -> List[BusyInterval]:
    try:
      calendars = list_google_calendars(self.service)
      calendar_ids = _select_calendar_ids(calendars, self.selected_calendar_ids)
      busy: List[BusyInterval] = []
      for calendar_id in calendar_ids:
        for raw in self._list_events(calendar_id, window):
          interval = busy_from_gcal_event(raw, calendar_id)
          if interval is not None:
            busy.append(interval)
    except HttpError as exc:
      raise GatewayError(f"Google Calendar read failed: {exc}", exc) from exc
    except (GoogleAuthError, OSError) as exc:
      raise GatewayError(f"Google Calendar unreachable: {exc}", exc) from exc
    busy.sort(key=lambda b: b.start)
    logger.debug("[GCAL] %d busy intervals from %d calendars",
                 len(busy), len(calendar_ids))
    return busy

  def create_event(self, block: Block, metadata: Dict[str, Any]) -> str:
    body: Dict[str, Any] = {
        "summary": block.title or metadata.get("title") or "",
        "description": metadata.get("description") or "",
        "start": {"dateTime": ensure_aware(block.start).isoformat(),
                  "timeZone": GCAL_EVENT_TIMEZONE},
        "end": {"dateTime": ensure_aware(block.end).isoformat(),
                "timeZone": GCAL_EVENT_TIMEZONE},
    }
    private = {k: str(v) for k, v in (metadata.get("private") or {}).items()}
    if private:
      body["extendedProperties"] = {"private": private}
    try:
      created = self.service.events().insert(calendarId=self.target_calendar_id,
                                             body=body).execute()
    except HttpError as exc:
      raise GatewayError(f"Google event create failed: {exc}", exc) from exc
    except (GoogleAuthError, OSError) as exc:
      raise GatewayError(f"Google Calendar unreachable: {exc}", exc) from exc
    return created.get("id")

  def delete_event(self, event_id: str) -> None:
    if not event_id:
      raise ValueError("event_id is empty")
    try:
      self.service.events().delete(calendarId=self.target_calendar_id,
                                   eventId=event_id).execute()
    except HttpError as exc:
      raise GatewayError(f"Google event delete failed: {exc}", exc) from exc
    except (GoogleAuthError, OSError) as exc:
      raise GatewayError(f"Google Calendar unreachable: {exc}", exc) from exc
