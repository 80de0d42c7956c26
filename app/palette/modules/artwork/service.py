from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from sqlalchemy import or_, select

from app.palette.audit import history_for, record_event
from app.palette.errors import Forbidden, NotFound, ValidationError
from app.palette.models import AuditEvent
from app.palette.modules.artwork.models import Artwork
from app.palette.rbac import RequestContext
from app.palette.storage import release_blob
from app.palette.utils import clean_str, utcnow, word_count

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.palette.models import User
    from app.palette.storage import Storage

logger = logging.getLogger(__name__)

ARTWORK_STATUSES = ("pending", "approved", "rejected")
DESCRIPTION_WORD_RANGE = (150, 200)


# ---------- Visibility ----------

@dataclass(frozen=True)
class PublicView:
    """Anonymous callers: approved artworks only."""


@dataclass(frozen=True)
class OwnerView:
    """Signed-in members: approved artworks plus their own in any status."""

    user_id: int


@dataclass(frozen=True)
class AdminView:
    """Admins: everything, or a single status when one is given."""

    status: str | None = None


ArtworkView = Union[PublicView, OwnerView, AdminView]


def view_for(ctx: RequestContext, status_filter: str | None = None) -> ArtworkView:
    if ctx.is_admin:
        status = clean_str(status_filter)
        # Unknown statuses fall back to "all".
        return AdminView(status=status if status in ARTWORK_STATUSES else None)
    if ctx.is_authenticated:
        return OwnerView(user_id=ctx.user_id)  # type: ignore[arg-type]
    return PublicView()


def list_artworks(s: "Session", view: ArtworkView) -> list[Artwork]:
    stmt = select(Artwork)
    if isinstance(view, AdminView):
        if view.status:
            stmt = stmt.where(Artwork.status == view.status)
    elif isinstance(view, OwnerView):
        stmt = stmt.where(or_(Artwork.status == "approved", Artwork.artist_user_id == view.user_id))
    else:
        stmt = stmt.where(Artwork.status == "approved")
    stmt = stmt.order_by(Artwork.created_at.desc(), Artwork.id.desc())
    return list(s.scalars(stmt).all())


def artworks_for_user(s: "Session", user_id: int) -> list[Artwork]:
    stmt = (
        select(Artwork)
        .where(Artwork.artist_user_id == user_id)
        .order_by(Artwork.created_at.desc(), Artwork.id.desc())
    )
    return list(s.scalars(stmt).all())


def get_artwork(s: "Session", artwork_id: int, ctx: RequestContext | None = None) -> Artwork:
    """
    Load an artwork by id. When a request context is given, non-approved
    artworks are only visible to their artist or an admin.
    """
    artwork = s.get(Artwork, artwork_id)
    if not artwork:
        raise NotFound("Artwork not found")
    if ctx is not None and artwork.status != "approved":
        if not (ctx.is_admin or (ctx.user_id is not None and ctx.user_id == artwork.artist_user_id)):
            raise Forbidden("Not authorized to view this artwork")
    return artwork


# ---------- Submission ----------

def validate_artwork_payload(
    payload: dict,
    *,
    has_image: bool,
    enforce_word_count: bool = False,
    word_range: tuple[int, int] = DESCRIPTION_WORD_RANGE,
) -> list[str]:
    errors = []
    if not has_image:
        errors.append("No image file uploaded")
    if not clean_str(payload.get("title")):
        errors.append("Please provide title for the artwork")
    if not clean_str(payload.get("credits")):
        errors.append("Please provide credits for the artwork")
    if enforce_word_count:
        lo, hi = word_range
        words = word_count(clean_str(payload.get("description")))
        if words < lo or words > hi:
            errors.append(f"Description must be between {lo} and {hi} words (currently {words})")
    return errors


def submit_artwork(
    s: "Session",
    payload: dict,
    image_url: str | None,
    user: "User",
    *,
    enforce_word_count: bool = False,
    word_range: tuple[int, int] = DESCRIPTION_WORD_RANGE,
) -> Artwork:
    """Create a submission for `user`. The status is always pending, whatever the payload says."""
    errors = validate_artwork_payload(
        payload,
        has_image=bool(image_url),
        enforce_word_count=enforce_word_count,
        word_range=word_range,
    )
    if errors:
        raise ValidationError.from_errors(errors)

    now = utcnow()
    artwork = Artwork(
        title=clean_str(payload.get("title")),
        description=clean_str(payload.get("description")) or None,
        credits=clean_str(payload.get("credits")),
        image_url=image_url,
        artist_user_id=user.id,
        status="pending",
        score=None,
        created_at=now,
        updated_at=now,
    )
    s.add(artwork)
    s.flush()
    record_event(
        s,
        actor=user,
        action="artwork.submit",
        entity_type="Artwork",
        entity_id=str(artwork.id),
        metadata={"title": artwork.title, "status": artwork.status},
    )
    return artwork


# ---------- Moderation ----------

def set_status(s: "Session", artwork: Artwork, new_status: object, user: "User") -> Artwork:
    """Any status may move to any other; each move lands in the audit trail."""
    if not isinstance(new_status, str) or new_status not in ARTWORK_STATUSES:
        raise ValidationError("Invalid status")
    old_status = artwork.status
    artwork.status = new_status
    artwork.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="artwork.status",
        entity_type="Artwork",
        entity_id=str(artwork.id),
        metadata={"old": old_status, "new": new_status},
    )
    return artwork


def set_score(s: "Session", artwork: Artwork, score: object, user: "User") -> Artwork:
    # bool is an int subclass; numeric strings are rejected too.
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 100:
        raise ValidationError("Score must be a number between 0 and 100")
    old_score = artwork.score
    artwork.score = float(score)
    artwork.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="artwork.score",
        entity_type="Artwork",
        entity_id=str(artwork.id),
        metadata={"old": old_score, "new": artwork.score},
    )
    return artwork


def can_remove(artwork: Artwork, ctx: RequestContext) -> bool:
    if ctx.is_admin:
        return True
    return ctx.user_id is not None and ctx.user_id == artwork.artist_user_id and artwork.status == "pending"


def remove_artwork(s: "Session", artwork: Artwork, ctx: RequestContext, storage: "Storage") -> None:
    """Admins may always remove; artists only while their artwork is pending."""
    if not can_remove(artwork, ctx):
        raise Forbidden("Not authorized to delete this artwork")

    image_url = artwork.image_url
    record_event(
        s,
        actor=ctx.user,
        action="artwork.delete",
        entity_type="Artwork",
        entity_id=str(artwork.id),
        metadata={"title": artwork.title, "status": artwork.status},
        request_id=ctx.request_id,
    )
    s.delete(artwork)
    s.commit()

    release_blob(storage, image_url)


def status_history(s: "Session", artwork_id: int) -> list[AuditEvent]:
    return [ev for ev in history_for(s, "Artwork", str(artwork_id)) if ev.action == "artwork.status"]
