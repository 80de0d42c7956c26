from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.palette.models import Base
from app.palette.utils import iso_utc, utcnow


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_date_type", "date", "type"),
        Index("idx_events_type", "type"),
        Index("idx_events_end_date", "end_date"),
        CheckConstraint("max_participants IS NULL OR max_participants >= 1", name="ck_events_max_participants_positive"),
        CheckConstraint("end_date IS NULL OR end_date >= date", name="ck_events_end_after_start"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # workshop, competition, event

    # Start and optional end, naive UTC
    date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    image_url: Mapped[str] = mapped_column(String(512), nullable=False)
    max_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # upcoming, ongoing, completed, cancelled (informational; listings go by dates)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="upcoming")

    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    registrations: Mapped[list["EventRegistration"]] = relationship(
        "EventRegistration",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="EventRegistration.registered_at",
    )

    @property
    def registered_participant_ids(self) -> list[int]:
        return [r.user_id for r in self.registrations]

    @property
    def effective_end(self) -> datetime:
        return self.end_date if self.end_date is not None else self.date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "date": iso_utc(self.date),
            "endDate": iso_utc(self.end_date),
            "location": self.location,
            "type": self.type,
            "imageUrl": self.image_url,
            "maxParticipants": self.max_participants,
            "registeredParticipants": self.registered_participant_ids,
            "status": self.status,
            "createdBy": self.created_by_user_id,
            "createdAt": iso_utc(self.created_at),
            "updatedAt": iso_utc(self.updated_at),
        }


class EventRegistration(Base):
    """One row per (event, user); the composite key makes the participant list a set."""

    __tablename__ = "event_registrations"
    __table_args__ = (
        Index("idx_event_registrations_user", "user_id"),
    )

    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    event: Mapped[Event] = relationship("Event", back_populates="registrations", lazy="selectin")
