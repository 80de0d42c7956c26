from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.palette.models import Base, User
from app.palette.utils import iso_utc, utcnow


class Artwork(Base):
    __tablename__ = "artworks"
    __table_args__ = (
        Index("idx_artworks_status_created", "status", "created_at"),
        Index("idx_artworks_artist", "artist_user_id"),
        CheckConstraint("score IS NULL OR (score >= 0 AND score <= 100)", name="ck_artworks_score_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    credits: Mapped[str] = mapped_column(String(255), nullable=False)
    image_url: Mapped[str] = mapped_column(String(512), nullable=False)

    artist_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # pending, approved, rejected
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    score: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    artist: Mapped[User] = relationship("User", lazy="selectin")

    def to_dict(self) -> dict:
        artist = None
        if self.artist is not None:
            artist = {
                "id": self.artist.id,
                "name": self.artist.name,
                "iitgEmail": self.artist.iitg_email,
                "rollNumber": self.artist.roll_number,
            }
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "credits": self.credits,
            "imageUrl": self.image_url,
            "artist": artist,
            "status": self.status,
            "score": self.score,
            "createdAt": iso_utc(self.created_at),
            "updatedAt": iso_utc(self.updated_at),
        }
