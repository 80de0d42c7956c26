from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.palette.db import db_session
from app.palette.errors import ValidationError
from app.palette.modules.events.registration import apply_to_event, cancel_registration
from app.palette.modules.events.service import (
    create_event,
    delete_event,
    events_for_user,
    get_event,
    list_past,
    list_upcoming,
    replace_event_image,
    update_event,
    validate_event_payload,
)
from app.palette.rbac import require_admin, require_login
from app.palette.storage import EVENT_IMAGE_EXTENSIONS, release_blob, save_image
from app.palette.web import get_notifier, get_storage, local_offset_minutes, request_payload, uploaded_image

bp = Blueprint("events", __name__)

_IMAGE_PREFIX = "events"


def _store_event_image(upload) -> str:
    return save_image(
        get_storage(),
        _IMAGE_PREFIX,
        upload.data,
        upload.filename,
        upload.content_type,
        allowed_extensions=EVENT_IMAGE_EXTENSIONS,
    )


# ---------- Listings ----------
@bp.get("/upcoming")
def upcoming():
    s = db_session()
    event_type = (request.args.get("type") or "").strip() or None
    events = list_upcoming(s, event_type=event_type, offset_minutes=local_offset_minutes())
    return jsonify([e.to_dict() for e in events])


@bp.get("/workshops")
def workshops():
    s = db_session()
    events = list_upcoming(s, event_type="workshop", offset_minutes=local_offset_minutes())
    return jsonify([e.to_dict() for e in events])


@bp.get("/competitions")
def competitions():
    s = db_session()
    events = list_upcoming(s, event_type="competition", offset_minutes=local_offset_minutes())
    return jsonify([e.to_dict() for e in events])


@bp.get("/past")
def past():
    s = db_session()
    events = list_past(s, offset_minutes=local_offset_minutes())
    return jsonify([e.to_dict() for e in events])


@bp.get("/my-events")
@require_login
def my_events():
    s = db_session()
    events = events_for_user(s, g.current_user.id)
    return jsonify([e.to_dict() for e in events])


@bp.get("/<int:event_id>")
def event_detail(event_id: int):
    s = db_session()
    return jsonify(get_event(s, event_id).to_dict())


# ---------- Admin ----------
@bp.post("")
@require_admin
def event_create():
    s = db_session()
    payload = request_payload()
    upload = uploaded_image()

    # Reject bad payloads before anything is written to storage.
    errors = validate_event_payload(payload, has_image=upload is not None)
    if errors:
        raise ValidationError.from_errors(errors)

    image_url = _store_event_image(upload)
    try:
        event = create_event(s, payload, image_url, g.current_user)
        s.commit()
    except Exception:
        s.rollback()
        release_blob(get_storage(), image_url)
        raise

    current_app.logger.info("Event %s created by user %s", event.id, g.current_user.id)
    return jsonify({"message": "Event created successfully", "event": event.to_dict()}), 201


@bp.put("/<int:event_id>")
@require_admin
def event_update(event_id: int):
    s = db_session()
    event = get_event(s, event_id)
    payload = request_payload()
    upload = uploaded_image()

    if upload is None:
        update_event(s, event, payload, g.current_user)
        s.commit()
    else:
        image_url = _store_event_image(upload)
        try:
            replace_event_image(s, event, payload, g.current_user, image_url, get_storage())
        except Exception:
            s.rollback()
            release_blob(get_storage(), image_url)
            raise

    return jsonify({"message": "Event updated successfully", "event": event.to_dict()})


@bp.delete("/<int:event_id>")
@require_admin
def event_delete(event_id: int):
    s = db_session()
    event = get_event(s, event_id)
    delete_event(s, event, g.current_user, get_storage())
    return jsonify({"message": "Event deleted successfully"})


# ---------- Registration ----------
@bp.post("/<int:event_id>/apply")
@require_login
def event_apply(event_id: int):
    s = db_session()
    event = apply_to_event(
        s,
        event_id,
        g.current_user,
        notifier=get_notifier(),
        offset_minutes=local_offset_minutes(),
    )
    return jsonify({"message": "Successfully applied to event", "event": event.to_dict()})


@bp.delete("/<int:event_id>/cancel")
@require_login
def event_cancel(event_id: int):
    s = db_session()
    event = cancel_registration(s, event_id, g.current_user)
    return jsonify({"message": "Successfully cancelled registration", "event": event.to_dict()})
