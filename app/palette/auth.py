from __future__ import annotations

import re
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy import or_
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.palette.audit import record_event
from app.palette.db import db_session
from app.palette.errors import NotFound, Unauthorized, ValidationError
from app.palette.models import User
from app.palette.notifier import deliver, verification_code_message
from app.palette.rbac import require_login
from app.palette.security import ensure_csrf_token, generate_verification_code
from app.palette.utils import clean_str, utcnow
from app.palette.web import get_notifier, request_payload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

MIN_PASSWORD_LENGTH = 6
VERIFICATION_CODE_TTL_MINUTES = 60
_EMAIL_RE = re.compile(r"^[\w.+-]+@([\w-]+\.)+[\w-]{2,}$")


def _check_rate_limit(ip: str) -> bool:
    now = utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None
        return

    if not user or not user.is_active or not user.is_verified:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


# ---------- Credential service ----------

def validate_registration_payload(payload: dict, *, institute_domain: str) -> list[str]:
    errors = []
    iitg_email = clean_str(payload.get("iitgEmail")).lower()
    personal_email = clean_str(payload.get("personalEmail")).lower()
    if not iitg_email or not iitg_email.endswith(f"@{institute_domain}"):
        errors.append(f"IITG email must end with @{institute_domain}")
    elif not _EMAIL_RE.match(iitg_email):
        errors.append("IITG email is not a valid address.")
    if not personal_email or not _EMAIL_RE.match(personal_email):
        errors.append("Please fill a valid personal email address.")
    if len(payload.get("password") or "") < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if not clean_str(payload.get("name")):
        errors.append("Name is required.")
    if not clean_str(payload.get("rollNumber")):
        errors.append("Roll number is required.")
    return errors


def register_user(s: Session, payload: dict, *, institute_domain: str, now: datetime | None = None) -> User:
    """Create an unverified user holding a fresh verification code."""
    errors = validate_registration_payload(payload, institute_domain=institute_domain)
    if errors:
        raise ValidationError.from_errors(errors)

    iitg_email = clean_str(payload.get("iitgEmail")).lower()
    personal_email = clean_str(payload.get("personalEmail")).lower()
    roll_number = clean_str(payload.get("rollNumber"))

    existing = (
        s.query(User)
        .filter(
            or_(
                User.iitg_email == iitg_email,
                User.personal_email == personal_email,
                User.roll_number == roll_number,
            )
        )
        .first()
    )
    if existing:
        raise ValidationError("User with provided IITG email, personal email or roll number already exists")

    now = now or utcnow()
    user = User(
        iitg_email=iitg_email,
        personal_email=personal_email,
        password_hash=generate_password_hash(payload["password"]),
        name=clean_str(payload.get("name")),
        roll_number=roll_number,
        phone_number=clean_str(payload.get("phoneNumber")) or None,
        is_admin=False,
        is_verified=False,
        verification_code=generate_verification_code(),
        verification_code_expires=now + timedelta(minutes=VERIFICATION_CODE_TTL_MINUTES),
        created_at=now,
    )
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id))
    return user


def verify_user_code(s: Session, iitg_email: str, code: str, *, now: datetime | None = None) -> User:
    user = s.query(User).filter(User.iitg_email == clean_str(iitg_email).lower()).one_or_none()
    if not user:
        raise NotFound("User not found.")
    if user.is_verified:
        raise ValidationError("Email already verified.")
    if not user.verification_code or user.verification_code != clean_str(code):
        raise ValidationError("Invalid verification code.")
    now = now or utcnow()
    if not user.verification_code_expires or user.verification_code_expires < now:
        raise ValidationError("Verification code expired.")

    user.is_verified = True
    user.verification_code = None
    user.verification_code_expires = None
    record_event(s, actor=user, action="auth.verify", entity_type="User", entity_id=str(user.id))
    return user


def authenticate(s: Session, identifier: str, password: str) -> User:
    """Look up by personal or institute email; unverified accounts cannot log in."""
    ident = clean_str(identifier).lower()
    user = s.query(User).filter(User.personal_email == ident).one_or_none()
    if not user:
        user = s.query(User).filter(User.iitg_email == ident).one_or_none()
    if not user or not user.is_active:
        raise ValidationError("Invalid credentials")
    if not user.is_verified:
        raise ValidationError("Please verify your IITG email first.")
    if not check_password_hash(user.password_hash, password or ""):
        raise ValidationError("Invalid credentials")
    return user


def update_profile(s: Session, user: User, payload: dict) -> User:
    changes = {}
    name = clean_str(payload.get("name"))
    if name and name != user.name:
        changes["name"] = {"old": user.name, "new": name}
        user.name = name

    personal_email = clean_str(payload.get("personalEmail")).lower()
    if personal_email and personal_email != user.personal_email:
        if not _EMAIL_RE.match(personal_email):
            raise ValidationError("Please fill a valid personal email address.")
        taken = s.query(User).filter(User.personal_email == personal_email, User.id != user.id).first()
        if taken:
            raise ValidationError("Personal email is already in use.")
        changes["personal_email"] = {"old": user.personal_email, "new": personal_email}
        user.personal_email = personal_email

    phone = clean_str(payload.get("phoneNumber"))
    if phone and phone != user.phone_number:
        changes["phone_number"] = {"old": user.phone_number, "new": phone}
        user.phone_number = phone

    new_password = payload.get("password") or ""
    if new_password:
        current = payload.get("currentPassword") or ""
        if not current:
            raise ValidationError("Please provide current password to update your password.")
        if not check_password_hash(user.password_hash, current):
            raise Unauthorized("Invalid current password.")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
        user.password_hash = generate_password_hash(new_password)
        changes["password"] = "changed"

    record_event(s, actor=user, action="user.profile_update", entity_type="User", entity_id=str(user.id),
                 metadata={"changes": changes})
    return user


# ---------- Routes ----------

@bp.get("/csrf")
def csrf_token():
    return jsonify({"csrfToken": ensure_csrf_token()})


@bp.post("/register")
def register_post():
    s = db_session()
    payload = request_payload()
    user = register_user(s, payload, institute_domain=current_app.config["INSTITUTE_EMAIL_DOMAIN"])
    s.commit()

    deliver(
        get_notifier(),
        verification_code_message(
            name=user.name,
            to=user.iitg_email,
            code=user.verification_code or "",
            ttl_minutes=VERIFICATION_CODE_TTL_MINUTES,
        ),
    )
    current_app.logger.info("Registered user id=%s (verification pending)", user.id)
    return jsonify({
        "message": "User registered successfully. Please check your IITG email for the verification code.",
        "userId": user.id,
        "iitgEmail": user.iitg_email,
    }), 201


@bp.post("/verify-code")
def verify_code_post():
    s = db_session()
    payload = request_payload()
    verify_user_code(s, payload.get("iitgEmail") or "", payload.get("verificationCode") or "")
    s.commit()
    return jsonify({"message": "IITG email verified successfully. You can now log in."})


@bp.post("/login")
def login_post():
    payload = request_payload()
    identifier = clean_str(payload.get("loginIdentifier") or payload.get("email"))
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return jsonify({"message": "Too many login attempts. Please wait 5 minutes.", "kind": "rate_limited"}), 429

    _record_attempt(ip)

    s = db_session()
    try:
        user = authenticate(s, identifier, payload.get("password") or "")
    except ValidationError as e:
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=identifier,
            reason=e.message,
        )
        s.commit()
        raise

    session.clear()
    session["user_id"] = user.id
    ensure_csrf_token()
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"user": user.to_public_dict(), "csrfToken": session["csrf_token"]})


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return jsonify({"message": "Logged out"})


@bp.get("/me")
@require_login
def me():
    return jsonify(g.current_user.to_public_dict())

