import logging
from datetime import timedelta

from flask import Flask, g, jsonify, request, session
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.palette.config import load_config
from app.palette.db import init_db, teardown_db_session
from app.palette.errors import PaletteError
from app.palette.notifier import notifier_from_config
from app.palette.routes import bp as routes_bp
from app.palette.auth import bp as auth_bp, load_current_user
from app.palette.profile import bp as users_bp
from app.palette.modules.events.routes import bp as events_bp
from app.palette.modules.artwork.routes import bp as artwork_bp
from app.palette.modules.contact.routes import bp as contact_bp
from app.palette.modules.exhibition.routes import bp as exhibition_bp

# Public entry points that establish (or precede) a session.
_CSRF_EXEMPT_ENDPOINTS = frozenset(
    {
        "auth.csrf_token",
        "auth.register_post",
        "auth.verify_code_post",
        "auth.login_post",
        "contact.contact_submit",
    }
)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=30)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False  # type: ignore[attr-defined]

    from app.palette.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/uploads/", "/health", "/healthz")):
            return None
        session.permanent = True
        if not app.config.get("CSRF_ENABLED"):
            return None
        ensure_csrf_token()
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.endpoint in _CSRF_EXEMPT_ENDPOINTS:
                return None
            if not validate_csrf(request):
                return jsonify({"message": "CSRF token missing or invalid.", "kind": "csrf_failed"}), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            try:
                from app.palette.storage import S3Storage, storage_from_config

                storage = storage_from_config(app.config)
                if isinstance(storage, S3Storage):
                    storage._client().head_bucket(Bucket=storage.bucket)
                    app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
            except Exception as e:
                app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)

    app.extensions["notifier"] = notifier_from_config(app.config)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(events_bp, url_prefix="/api/events")
    app.register_blueprint(artwork_bp, url_prefix="/api/artwork")
    app.register_blueprint(contact_bp, url_prefix="/api/contact")
    app.register_blueprint(exhibition_bp, url_prefix="/api/exhibition")

    def _load_user_wrapper():
        if request.path.startswith(("/uploads/", "/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    cors_origins = {o.strip() for o in (app.config.get("CORS_ORIGINS") or "").split(",") if o.strip()}

    @app.after_request
    def _cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-CSRF-Token"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
            response.headers.add("Vary", "Origin")
        return response

    @app.errorhandler(PaletteError)
    def _err_palette(e: PaletteError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("%s (request_id=%s)", e.message, getattr(g, "request_id", None))
        elif e.status_code == 403:
            app.logger.warning(
                "Forbidden: %s missing_permission=%s request_id=%s",
                request.path,
                getattr(g, "missing_permission", None),
                getattr(g, "request_id", None),
            )
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"message": "Not found", "kind": "not_found"}), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return jsonify({"message": "Method not allowed", "kind": "method_not_allowed"}), 405

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return jsonify({"message": "File too large. Maximum size is 5MB.", "kind": "validation_error"}), 413

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        original = getattr(e, "original_exception", None)
        if original is not None:
            app.logger.error("Unhandled 500 (request_id=%s)", rid, exc_info=original)
        else:
            app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"message": "Server error", "kind": "server_error"}), 500

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"message": e.description or e.name, "kind": "http_error"}), e.code or 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
