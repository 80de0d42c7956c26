"""Small request helpers shared by the JSON blueprints."""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, request

from app.palette.notifier import Notifier
from app.palette.storage import Storage, storage_from_config


@dataclass(frozen=True)
class UploadedImage:
    data: bytes
    filename: str
    content_type: str


def request_payload() -> dict:
    """JSON body, or form fields for multipart/form-encoded requests."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return {k: v for k, v in request.form.items()}


def uploaded_image(field: str = "image") -> UploadedImage | None:
    f = request.files.get(field)
    if not f or not f.filename:
        return None
    return UploadedImage(data=f.read(), filename=f.filename, content_type=f.mimetype or "")


def get_storage() -> Storage:
    return storage_from_config(current_app.config)


def get_notifier() -> Notifier | None:
    return current_app.extensions.get("notifier")


def local_offset_minutes() -> int:
    return int(current_app.config.get("LOCAL_TZ_OFFSET_MINUTES", 330))
