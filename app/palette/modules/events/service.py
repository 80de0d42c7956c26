from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, or_, select

from app.palette.audit import record_event
from app.palette.errors import NotFound, ValidationError
from app.palette.modules.events.models import Event, EventRegistration
from app.palette.storage import release_blob
from app.palette.timewindow import IST_OFFSET_MINUTES, now_utc, parse_instant, start_of_local_day, to_naive_utc
from app.palette.utils import clean_str, iso_utc, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.palette.models import User
    from app.palette.storage import Storage

logger = logging.getLogger(__name__)

EVENT_TYPES = ("workshop", "competition", "event")
EVENT_STATUSES = ("upcoming", "ongoing", "completed", "cancelled")
TITLE_MAX = 100
DESCRIPTION_MAX = 2000


# ---------- Validation ----------

def parse_max_participants(raw: object) -> int | None:
    """None/"" -> no limit. Anything else must be a whole number >= 1 (ValueError otherwise)."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    if isinstance(raw, bool):
        raise ValueError("boolean is not a participant count")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ValueError("fractional participant count")
        raw = int(raw)
    value = int(str(raw).strip())
    if value < 1:
        raise ValueError("participant count below 1")
    return value


def _parse_date_field(raw: object, label: str, errors: list[str]) -> datetime | None:
    try:
        return to_naive_utc(parse_instant(raw))
    except (TypeError, ValueError):
        errors.append(f"Invalid {label} date format")
        return None


def validate_event_payload(payload: dict, *, has_image: bool) -> list[str]:
    """Validate an event creation payload. Returns list of errors."""
    errors = []
    missing = [
        label
        for key, label in (
            ("title", "title"),
            ("description", "description"),
            ("date", "start date"),
            ("location", "location"),
            ("type", "type"),
        )
        if not clean_str(payload.get(key))
    ]
    if missing:
        errors.append(f"Please enter all required fields: {', '.join(missing)}")

    event_type = clean_str(payload.get("type"))
    if event_type and event_type not in EVENT_TYPES:
        errors.append("Invalid event type. Must be workshop, competition, or event")

    if len(clean_str(payload.get("title"))) > TITLE_MAX:
        errors.append(f"Title cannot be more than {TITLE_MAX} characters")
    if len(clean_str(payload.get("description"))) > DESCRIPTION_MAX:
        errors.append(f"Description cannot be more than {DESCRIPTION_MAX} characters")

    if not has_image:
        errors.append("Event image is required")

    start = None
    if clean_str(payload.get("date")):
        start = _parse_date_field(payload.get("date"), "start", errors)
    if clean_str(payload.get("endDate")):
        end = _parse_date_field(payload.get("endDate"), "end", errors)
        if start and end and end < start:
            errors.append("End date cannot be before start date")

    try:
        parse_max_participants(payload.get("maxParticipants"))
    except (TypeError, ValueError):
        errors.append("Max participants must be a positive number")
    return errors


# ---------- Queries ----------

def _upcoming_clause(start_of_today: datetime):
    return or_(
        and_(Event.end_date.isnot(None), Event.end_date >= start_of_today),
        and_(Event.end_date.is_(None), Event.date >= start_of_today),
    )


def _past_clause(start_of_today: datetime):
    # Exact complement of _upcoming_clause.
    return or_(
        and_(Event.end_date.isnot(None), Event.end_date < start_of_today),
        and_(Event.end_date.is_(None), Event.date < start_of_today),
    )


def _start_of_today(now: datetime | None, offset_minutes: int) -> datetime:
    return to_naive_utc(start_of_local_day(now or now_utc(), offset_minutes))


def list_upcoming(
    s: "Session",
    *,
    event_type: str | None = None,
    now: datetime | None = None,
    offset_minutes: int = IST_OFFSET_MINUTES,
) -> list[Event]:
    """Events whose effective end is on or after the start of the local day, earliest first."""
    stmt = select(Event).where(_upcoming_clause(_start_of_today(now, offset_minutes)))
    # Unknown types are ignored rather than rejected.
    if event_type and event_type in EVENT_TYPES:
        stmt = stmt.where(Event.type == event_type)
    stmt = stmt.order_by(Event.date.asc(), Event.id.asc())
    return list(s.scalars(stmt).all())


def list_past(
    s: "Session",
    *,
    now: datetime | None = None,
    offset_minutes: int = IST_OFFSET_MINUTES,
) -> list[Event]:
    """Events that ended before the start of the local day, most recent first."""
    stmt = (
        select(Event)
        .where(_past_clause(_start_of_today(now, offset_minutes)))
        .order_by(Event.date.desc(), Event.id.desc())
    )
    return list(s.scalars(stmt).all())


def is_event_past(event: Event, *, now: datetime | None = None, offset_minutes: int = IST_OFFSET_MINUTES) -> bool:
    return event.effective_end < _start_of_today(now, offset_minutes)


def get_event(s: "Session", event_id: int) -> Event:
    event = s.get(Event, event_id)
    if not event:
        raise NotFound("Event not found")
    return event


def events_for_user(s: "Session", user_id: int) -> list[Event]:
    stmt = (
        select(Event)
        .join(EventRegistration, EventRegistration.event_id == Event.id)
        .where(EventRegistration.user_id == user_id)
        .order_by(Event.date.desc(), Event.id.desc())
    )
    return list(s.scalars(stmt).all())


# ---------- Mutations ----------

def create_event(s: "Session", payload: dict, image_url: str | None, user: "User") -> Event:
    """Create a new event."""
    errors = validate_event_payload(payload, has_image=bool(image_url))
    if errors:
        raise ValidationError.from_errors(errors)

    now = utcnow()
    end_raw = payload.get("endDate")
    event = Event(
        title=clean_str(payload.get("title")),
        description=clean_str(payload.get("description")),
        location=clean_str(payload.get("location")),
        type=clean_str(payload.get("type")),
        date=to_naive_utc(parse_instant(payload.get("date"))),
        end_date=to_naive_utc(parse_instant(end_raw)) if clean_str(end_raw) else None,
        image_url=image_url,
        max_participants=parse_max_participants(payload.get("maxParticipants")),
        status="upcoming",
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(event)
    s.flush()

    record_event(
        s,
        actor=user,
        action="event.create",
        entity_type="Event",
        entity_id=str(event.id),
        metadata={"title": event.title, "type": event.type, "date": iso_utc(event.date)},
    )
    return event


def _locked_registration_count(s: "Session", event_id: int) -> int:
    """Lock the event row, then count registrations from the table rather than the loaded collection."""
    s.execute(select(Event.id).where(Event.id == event_id).with_for_update())
    return s.scalar(
        select(func.count()).select_from(EventRegistration).where(EventRegistration.event_id == event_id)
    ) or 0


def update_event(s: "Session", event: Event, payload: dict, user: "User", *, image_url: str | None = None) -> Event:
    """
    Partial update. Only keys present in the payload are considered; blank
    title/description/location/type/status/date values are ignored, a blank
    endDate clears it and a blank maxParticipants removes the limit.
    """
    errors: list[str] = []
    changes: dict[str, object] = {}

    new_type = clean_str(payload.get("type"))
    if new_type and new_type not in EVENT_TYPES:
        errors.append("Invalid event type")
    new_status = clean_str(payload.get("status"))
    if new_status and new_status not in EVENT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(EVENT_STATUSES)}")

    new_title = clean_str(payload.get("title"))
    if len(new_title) > TITLE_MAX:
        errors.append(f"Title cannot be more than {TITLE_MAX} characters")
    new_description = clean_str(payload.get("description"))
    if len(new_description) > DESCRIPTION_MAX:
        errors.append(f"Description cannot be more than {DESCRIPTION_MAX} characters")

    new_date = event.date
    if clean_str(payload.get("date")):
        new_date = _parse_date_field(payload.get("date"), "start", errors) or event.date

    new_end = event.end_date
    if "endDate" in payload:
        if clean_str(payload.get("endDate")):
            new_end = _parse_date_field(payload.get("endDate"), "end", errors) or event.end_date
        else:
            new_end = None
    if new_end is not None and new_end < new_date:
        errors.append("End date cannot be before start date")

    new_max = event.max_participants
    if "maxParticipants" in payload:
        try:
            new_max = parse_max_participants(payload.get("maxParticipants"))
        except (TypeError, ValueError):
            errors.append("Max participants must be a positive number")
        else:
            registered = _locked_registration_count(s, event.id)
            if new_max is not None and new_max < registered:
                errors.append(f"Cannot reduce max participants below current registrations ({registered})")
            s.expire(event, ["registrations"])

    if errors:
        raise ValidationError.from_errors(errors)

    for attr, value in (
        ("title", new_title),
        ("description", new_description),
        ("location", clean_str(payload.get("location"))),
        ("type", new_type),
        ("status", new_status),
    ):
        if value and value != getattr(event, attr):
            changes[attr] = {"old": getattr(event, attr), "new": value}
            setattr(event, attr, value)

    for attr, value in (("date", new_date), ("end_date", new_end), ("max_participants", new_max)):
        if value != getattr(event, attr):
            old = getattr(event, attr)
            changes[attr] = {
                "old": iso_utc(old) if isinstance(old, datetime) else old,
                "new": iso_utc(value) if isinstance(value, datetime) else value,
            }
            setattr(event, attr, value)

    if image_url:
        changes["image_url"] = {"old": event.image_url, "new": image_url}
        event.image_url = image_url

    event.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="event.edit",
        entity_type="Event",
        entity_id=str(event.id),
        metadata={"title": event.title, "changes": changes},
    )
    return event


def replace_event_image(
    s: "Session", event: Event, payload: dict, user: "User", image_url: str, storage: "Storage"
) -> Event:
    """Update with a new image; the old blob is released once the update is committed."""
    old_url = event.image_url
    update_event(s, event, payload, user, image_url=image_url)
    s.commit()
    if old_url and old_url != image_url:
        release_blob(storage, old_url)
    return event


def delete_event(s: "Session", event: Event, user: "User", storage: "Storage") -> None:
    """Delete the event (registrations cascade), commit, then release its image best-effort."""
    registered = len(event.registrations)
    if registered:
        logger.warning("Deleting event %s with %s registered participants", event.id, registered)
    image_url = event.image_url

    record_event(
        s,
        actor=user,
        action="event.delete",
        entity_type="Event",
        entity_id=str(event.id),
        metadata={"title": event.title, "registered": registered},
    )
    s.delete(event)
    s.commit()

    release_blob(storage, image_url)
