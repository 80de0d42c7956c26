from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.palette.audit import record_event
from app.palette.errors import NotFound, ValidationError
from app.palette.models import User
from app.palette.modules.exhibition.models import ExhibitionItem
from app.palette.storage import Storage, release_blob
from app.palette.utils import clean_str, utcnow

logger = logging.getLogger(__name__)

FIELDS = ("title", "description", "date", "time", "venue", "credits")


def validate_exhibition_payload(payload: dict, *, has_image: bool) -> list[str]:
    errors = []
    if not has_image:
        errors.append("No image file uploaded")
    missing = [f for f in FIELDS if not clean_str(payload.get(f))]
    if missing:
        errors.append(f"Please enter all required fields: {', '.join(missing)}")
    return errors


def list_items(s: Session) -> list[ExhibitionItem]:
    stmt = select(ExhibitionItem).order_by(ExhibitionItem.created_at.desc(), ExhibitionItem.id.desc())
    return list(s.scalars(stmt).all())


def get_item(s: Session, item_id: int) -> ExhibitionItem:
    item = s.get(ExhibitionItem, item_id)
    if not item:
        raise NotFound("Exhibition item not found")
    return item


def create_item(s: Session, payload: dict, image_url: str | None, user: User) -> ExhibitionItem:
    errors = validate_exhibition_payload(payload, has_image=bool(image_url))
    if errors:
        raise ValidationError.from_errors(errors)
    now = utcnow()
    item = ExhibitionItem(
        **{f: clean_str(payload.get(f)) for f in FIELDS},
        image_url=image_url,
        created_at=now,
        updated_at=now,
    )
    s.add(item)
    s.flush()
    record_event(
        s,
        actor=user,
        action="exhibition.create",
        entity_type="ExhibitionItem",
        entity_id=str(item.id),
        metadata={"title": item.title},
    )
    return item


def update_item(
    s: Session,
    item: ExhibitionItem,
    payload: dict,
    user: User,
    *,
    image_url: str | None = None,
    storage: Storage | None = None,
) -> ExhibitionItem:
    """
    Partial update: blank fields keep their current value. A new image
    replaces the old one, whose blob is released after the commit.
    """
    changes: dict[str, object] = {}
    for f in FIELDS:
        value = clean_str(payload.get(f))
        if value and value != getattr(item, f):
            changes[f] = {"old": getattr(item, f), "new": value}
            setattr(item, f, value)

    old_url = item.image_url
    if image_url:
        changes["image_url"] = {"old": old_url, "new": image_url}
        item.image_url = image_url

    item.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="exhibition.edit",
        entity_type="ExhibitionItem",
        entity_id=str(item.id),
        metadata={"title": item.title, "changes": changes},
    )
    s.commit()

    if image_url and storage is not None and old_url and old_url != image_url:
        release_blob(storage, old_url)
    return item


def delete_item(s: Session, item: ExhibitionItem, user: User, storage: Storage) -> None:
    image_url = item.image_url
    record_event(
        s,
        actor=user,
        action="exhibition.delete",
        entity_type="ExhibitionItem",
        entity_id=str(item.id),
        metadata={"title": item.title},
    )
    s.delete(item)
    s.commit()

    release_blob(storage, image_url)
