"""
Event registration (apply / cancel).

Per (event, user) the state is registered or not. The participant set is
kept duplicate-free and within max_participants by the store itself:

- the event row is locked (SELECT ... FOR UPDATE, honoured by Postgres)
- the registration row is written by one conditional INSERT ... SELECT that
  only produces a row when the user is not yet registered and the current
  count is below the limit
- (event_id, user_id) is the primary key, so a racing duplicate insert fails

The confirmation email is sent after commit and never affects the result.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Integer, delete, exists, func, insert, literal, select
from sqlalchemy.exc import IntegrityError

from app.palette.audit import record_event
from app.palette.errors import AlreadyRegistered, EventFull, EventInPast, NotFound, NotRegistered
from app.palette.modules.events.models import Event, EventRegistration
from app.palette.modules.events.service import is_event_past
from app.palette.notifier import deliver, registration_confirmation
from app.palette.timewindow import IST_OFFSET_MINUTES, as_utc
from app.palette.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.palette.models import User
    from app.palette.notifier import Notifier

logger = logging.getLogger(__name__)

registrations = EventRegistration.__table__


def _load_event_for_update(s: "Session", event_id: int) -> Event:
    event = s.scalars(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).one_or_none()
    if not event:
        raise NotFound("Event not found")
    return event


def _is_registered(s: "Session", event_id: int, user_id: int) -> bool:
    return bool(
        s.scalar(
            select(
                exists().where(
                    registrations.c.event_id == event_id,
                    registrations.c.user_id == user_id,
                )
            )
        )
    )


def _conditional_insert(event: Event, user_id: int, registered_at: datetime):
    """INSERT ... SELECT that yields a row only if not registered and below capacity."""
    already = exists().where(
        registrations.c.event_id == event.id,
        registrations.c.user_id == user_id,
    )
    source = select(
        literal(event.id, Integer),
        literal(user_id, Integer),
        literal(registered_at, DateTime),
    ).where(~already)
    if event.max_participants is not None:
        current = (
            select(func.count())
            .select_from(registrations)
            .where(registrations.c.event_id == event.id)
            .scalar_subquery()
        )
        source = source.where(current < event.max_participants)
    return insert(registrations).from_select(["event_id", "user_id", "registered_at"], source)


def _date_label(event: Event, offset_minutes: int) -> str:
    def local(d: datetime) -> str:
        return (as_utc(d) + timedelta(minutes=offset_minutes)).strftime("%d %b %Y")

    label = local(event.date)
    if event.end_date is not None:
        label += f" - {local(event.end_date)}"
    return label


def apply_to_event(
    s: "Session",
    event_id: int,
    user: "User",
    *,
    notifier: "Notifier | None" = None,
    now: datetime | None = None,
    offset_minutes: int = IST_OFFSET_MINUTES,
) -> Event:
    """
    Register `user` for the event.

    Raises NotFound, EventInPast, AlreadyRegistered or EventFull. Commits on
    success, then hands a confirmation email to the notifier.
    """
    event = _load_event_for_update(s, event_id)

    if is_event_past(event, now=now, offset_minutes=offset_minutes):
        s.rollback()
        raise EventInPast("Cannot apply to a past event")

    try:
        result = s.execute(_conditional_insert(event, user.id, utcnow()))
    except IntegrityError:
        # Lost a race against the same user's concurrent apply.
        s.rollback()
        raise AlreadyRegistered("Already applied to this event")

    if result.rowcount == 0:
        registered = _is_registered(s, event.id, user.id)
        s.rollback()
        if registered:
            raise AlreadyRegistered("Already applied to this event")
        raise EventFull("Event is full, no more applications accepted")

    record_event(
        s,
        actor=user,
        action="event.apply",
        entity_type="Event",
        entity_id=str(event.id),
        metadata={"user_id": user.id, "title": event.title},
    )
    s.commit()
    s.expire(event, ["registrations"])
    logger.info("User %s registered for event %s", user.id, event.id)

    deliver(
        notifier,
        registration_confirmation(
            name=user.name,
            to=user.iitg_email,
            event_title=event.title,
            event_type=event.type,
            date_label=_date_label(event, offset_minutes),
            location=event.location,
            description=event.description,
        ),
    )
    return event


def cancel_registration(s: "Session", event_id: int, user: "User") -> Event:
    """Remove `user` from the event. Raises NotFound or NotRegistered."""
    event = _load_event_for_update(s, event_id)

    result = s.execute(
        delete(registrations).where(
            registrations.c.event_id == event.id,
            registrations.c.user_id == user.id,
        )
    )
    if result.rowcount == 0:
        s.rollback()
        raise NotRegistered("You are not registered for this event")

    record_event(
        s,
        actor=user,
        action="event.cancel",
        entity_type="Event",
        entity_id=str(event.id),
        metadata={"user_id": user.id, "title": event.title},
    )
    s.commit()
    s.expire(event, ["registrations"])
    logger.info("User %s cancelled registration for event %s", user.id, event.id)
    return event

