from __future__ import annotations

import json

from flask import Blueprint, current_app, g, jsonify, request

from app.palette.db import db_session
from app.palette.errors import ValidationError
from app.palette.modules.artwork.service import (
    artworks_for_user,
    get_artwork,
    list_artworks,
    remove_artwork,
    set_score,
    set_status,
    status_history,
    submit_artwork,
    validate_artwork_payload,
    view_for,
)
from app.palette.rbac import current_context, require_admin, require_login
from app.palette.storage import ALLOWED_IMAGE_EXTENSIONS, release_blob, save_image
from app.palette.utils import iso_utc
from app.palette.web import get_storage, request_payload, uploaded_image

bp = Blueprint("artwork", __name__)

_IMAGE_PREFIX = "artwork"


@bp.get("")
def artwork_list():
    s = db_session()
    view = view_for(current_context(), request.args.get("status"))
    return jsonify([a.to_dict() for a in list_artworks(s, view)])


@bp.post("")
@require_login
def artwork_submit():
    s = db_session()
    payload = request_payload()
    upload = uploaded_image()
    enforce = bool(current_app.config.get("ARTWORK_ENFORCE_WORD_COUNT"))

    errors = validate_artwork_payload(payload, has_image=upload is not None, enforce_word_count=enforce)
    if errors:
        raise ValidationError.from_errors(errors)

    storage = get_storage()
    image_url = save_image(
        storage,
        _IMAGE_PREFIX,
        upload.data,
        upload.filename,
        upload.content_type,
        allowed_extensions=ALLOWED_IMAGE_EXTENSIONS,
    )
    try:
        artwork = submit_artwork(s, payload, image_url, g.current_user, enforce_word_count=enforce)
        s.commit()
    except Exception:
        s.rollback()
        release_blob(storage, image_url)
        raise

    current_app.logger.info("Artwork %s submitted by user %s", artwork.id, g.current_user.id)
    return jsonify(artwork.to_dict()), 201


@bp.get("/my-artworks")
@require_login
def my_artworks():
    s = db_session()
    return jsonify([a.to_dict() for a in artworks_for_user(s, g.current_user.id)])


@bp.get("/<int:artwork_id>")
def artwork_detail(artwork_id: int):
    s = db_session()
    return jsonify(get_artwork(s, artwork_id, current_context()).to_dict())


@bp.get("/<int:artwork_id>/history")
@require_admin
def artwork_history(artwork_id: int):
    s = db_session()
    get_artwork(s, artwork_id)
    return jsonify([
        {
            "at": iso_utc(ev.created_at),
            "actor": ev.actor_user_email,
            "old": json.loads(ev.metadata_json or "{}").get("old"),
            "new": json.loads(ev.metadata_json or "{}").get("new"),
        }
        for ev in status_history(s, artwork_id)
    ])


@bp.put("/<int:artwork_id>/status")
@require_admin
def artwork_status(artwork_id: int):
    s = db_session()
    artwork = get_artwork(s, artwork_id)
    set_status(s, artwork, request_payload().get("status"), g.current_user)
    s.commit()
    return jsonify(artwork.to_dict())


@bp.put("/<int:artwork_id>/score")
@require_admin
def artwork_score(artwork_id: int):
    s = db_session()
    artwork = get_artwork(s, artwork_id)
    set_score(s, artwork, request_payload().get("score"), g.current_user)
    s.commit()
    return jsonify(artwork.to_dict())


@bp.delete("/<int:artwork_id>")
@require_login
def artwork_delete(artwork_id: int):
    s = db_session()
    artwork = get_artwork(s, artwork_id)
    remove_artwork(s, artwork, current_context(), get_storage())
    return jsonify({"message": "Artwork removed"})
