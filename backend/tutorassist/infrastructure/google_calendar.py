"""Google Calendar — v3 REST calls against the caller's primary calendar.

Invariants:
    - All writes use sendUpdates=all so attendees are notified
    - Created events request a Meet conference (conferenceDataVersion=1)
    - meet_link is the conference entry point of type "video", or None
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from tutorassist.core.clock import as_utc, utcnow
from tutorassist.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"

REMINDERS = {
    "useDefault": False,
    "overrides": [
        {"method": "email", "minutes": 24 * 60},
        {"method": "popup", "minutes": 30},
    ],
}


@dataclass
class CalendarEvent:
    id: str
    summary: str
    start: str | None
    end: str | None
    html_link: str = ""
    meet_link: str | None = None
    description: str | None = None
    attendees: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "summary": self.summary,
            "description": self.description,
            "start": self.start,
            "end": self.end,
            "attendees": self.attendees,
            "meetLink": self.meet_link,
            "htmlLink": self.html_link,
        }


def _event_time(value: datetime) -> dict:
    return {"dateTime": as_utc(value).isoformat(), "timeZone": "UTC"}


def _parse_event(data: dict) -> CalendarEvent:
    entry_points = (data.get("conferenceData") or {}).get("entryPoints") or []
    meet_link = next(
        (e.get("uri") for e in entry_points if e.get("entryPointType") == "video"), None,
    )
    start = data.get("start") or {}
    end = data.get("end") or {}
    return CalendarEvent(
        id=data.get("id", ""),
        summary=data.get("summary") or "Untitled",
        description=data.get("description"),
        start=start.get("dateTime") or start.get("date"),
        end=end.get("dateTime") or end.get("date"),
        attendees=[a["email"] for a in data.get("attendees") or [] if a.get("email")],
        meet_link=meet_link,
        html_link=data.get("htmlLink") or "",
    )


class GoogleCalendarClient:
    """Thin async wrapper; one instance per access token."""

    def __init__(self, access_token: str, timeout: float = 15.0):
        self.access_token = access_token
        self.timeout = timeout

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ExternalServiceError("google_calendar", f"{method} failed: {e}")
        if response.status_code >= 400:
            logger.warning(
                f"Google Calendar {method} returned {response.status_code}",
            )
            raise ExternalServiceError(
                "google_calendar", f"{method} returned {response.status_code}",
            )
        return response

    async def create_event(
        self,
        summary: str,
        starts_at: datetime,
        ends_at: datetime,
        description: str | None = None,
        attendee_emails: list[str] | None = None,
    ) -> CalendarEvent:
        body = {
            "summary": summary,
            "description": description,
            "start": _event_time(starts_at),
            "end": _event_time(ends_at),
            "attendees": [{"email": e} for e in attendee_emails or []],
            "conferenceData": {
                "createRequest": {
                    "requestId": f"tutoring-{uuid.uuid4().hex}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                },
            },
            "reminders": REMINDERS,
        }
        response = await self._request(
            "POST", EVENTS_URL, json=body,
            params={"conferenceDataVersion": 1, "sendUpdates": "all"},
        )
        return _parse_event(response.json())

    async def patch_event(
        self,
        event_id: str,
        summary: str | None = None,
        description: str | None = None,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
        attendee_emails: list[str] | None = None,
    ) -> CalendarEvent:
        body: dict = {}
        if summary:
            body["summary"] = summary
        if description:
            body["description"] = description
        if starts_at:
            body["start"] = _event_time(starts_at)
        if ends_at:
            body["end"] = _event_time(ends_at)
        if attendee_emails is not None:
            body["attendees"] = [{"email": e} for e in attendee_emails]
        response = await self._request(
            "PATCH", f"{EVENTS_URL}/{event_id}", json=body,
            params={"sendUpdates": "all"},
        )
        return _parse_event(response.json())

    async def delete_event(self, event_id: str) -> None:
        await self._request(
            "DELETE", f"{EVENTS_URL}/{event_id}", params={"sendUpdates": "all"},
        )

    async def list_upcoming(
        self, max_results: int = 10, query: str | None = None,
    ) -> list[CalendarEvent]:
        params = {
            "timeMin": utcnow().isoformat(),
            "maxResults": max_results,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if query:
            params["q"] = query
        response = await self._request("GET", EVENTS_URL, params=params)
        return [_parse_event(item) for item in response.json().get("items") or []]
