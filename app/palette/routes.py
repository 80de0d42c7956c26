import mimetypes

from flask import Blueprint, abort, jsonify, send_file

from app.palette.storage import StorageError
from app.palette.web import get_storage

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return jsonify({"name": "palette", "api": "/api"})


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/uploads/<path:key>")
def uploaded_file(key: str):
    """Serve a stored image (event posters, artwork, exhibition items)."""
    storage = get_storage()
    try:
        if not storage.exists(key):
            abort(404)
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    mimetype = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return send_file(fobj, mimetype=mimetype, max_age=3600)
