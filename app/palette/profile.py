"""Member-facing profile views: own details, registered events, submitted artwork."""
from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.palette.auth import update_profile
from app.palette.db import db_session
from app.palette.modules.artwork.service import artworks_for_user
from app.palette.modules.events.service import events_for_user
from app.palette.rbac import require_login
from app.palette.web import request_payload

bp = Blueprint("users", __name__)


@bp.get("/profile")
@require_login
def profile_get():
    return jsonify(g.current_user.to_public_dict())


@bp.put("/profile")
@require_login
def profile_put():
    s = db_session()
    user = update_profile(s, g.current_user, request_payload())
    s.commit()
    return jsonify(user.to_public_dict())


@bp.get("/my-events")
@require_login
def my_events():
    s = db_session()
    return jsonify([e.to_dict() for e in events_for_user(s, g.current_user.id)])


@bp.get("/my-artwork")
@require_login
def my_artwork():
    s = db_session()
    return jsonify([a.to_dict() for a in artworks_for_user(s, g.current_user.id)])
