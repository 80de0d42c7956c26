from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from app.palette.db import db_session
from app.palette.errors import ValidationError
from app.palette.modules.exhibition.service import (
    create_item,
    delete_item,
    get_item,
    list_items,
    update_item,
    validate_exhibition_payload,
)
from app.palette.rbac import require_admin
from app.palette.storage import ALLOWED_IMAGE_EXTENSIONS, release_blob, save_image
from app.palette.web import get_storage, request_payload, uploaded_image

bp = Blueprint("exhibition", __name__)

_IMAGE_PREFIX = "exhibition"


def _store_image(upload) -> str:
    return save_image(
        get_storage(),
        _IMAGE_PREFIX,
        upload.data,
        upload.filename,
        upload.content_type,
        allowed_extensions=ALLOWED_IMAGE_EXTENSIONS,
    )


@bp.get("")
def exhibition_list():
    s = db_session()
    return jsonify([i.to_dict() for i in list_items(s)])


@bp.get("/<int:item_id>")
def exhibition_detail(item_id: int):
    s = db_session()
    return jsonify(get_item(s, item_id).to_dict())


@bp.post("")
@require_admin
def exhibition_create():
    s = db_session()
    payload = request_payload()
    upload = uploaded_image()

    errors = validate_exhibition_payload(payload, has_image=upload is not None)
    if errors:
        raise ValidationError.from_errors(errors)

    image_url = _store_image(upload)
    try:
        item = create_item(s, payload, image_url, g.current_user)
        s.commit()
    except Exception:
        s.rollback()
        release_blob(get_storage(), image_url)
        raise

    current_app.logger.info("Exhibition item %s created by user %s", item.id, g.current_user.id)
    return jsonify(item.to_dict()), 201


@bp.put("/<int:item_id>")
@require_admin
def exhibition_update(item_id: int):
    s = db_session()
    item = get_item(s, item_id)
    upload = uploaded_image()
    image_url = _store_image(upload) if upload is not None else None
    try:
        update_item(s, item, request_payload(), g.current_user, image_url=image_url, storage=get_storage())
    except Exception:
        s.rollback()
        if image_url:
            release_blob(get_storage(), image_url)
        raise
    return jsonify(item.to_dict())


@bp.delete("/<int:item_id>")
@require_admin
def exhibition_delete(item_id: int):
    s = db_session()
    item = get_item(s, item_id)
    delete_item(s, item, g.current_user, get_storage())
    return jsonify({"message": "Exhibition item removed successfully"})
