from datetime import timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.palette import create_app
from app.palette import auth as auth_module
from app.palette.auth import authenticate, register_user, verify_user_code
from app.palette.db import session_scope
from app.palette.errors import NotFound, ValidationError
from app.palette.models import AuditEvent, Base, User
from app.palette.utils import utcnow


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("MAIL_BACKEND", "log")
    monkeypatch.delenv("INSTITUTE_EMAIL_DOMAIN", raising=False)
    monkeypatch.delenv("CSRF_ENABLED", raising=False)
    auth_module._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


def _registration(**overrides):
    payload = {
        "iitgEmail": "Asha.Rao@iitgn.ac.in",
        "personalEmail": "asha@example.com",
        "password": "secret1",
        "name": "Asha Rao",
        "rollNumber": "22110001",
        "phoneNumber": "9999999999",
    }
    payload.update(overrides)
    return payload


# ---------- Service ----------

def test_register_creates_unverified_user_with_code(app):
    with session_scope(app) as s:
        user = register_user(s, _registration(), institute_domain="iitgn.ac.in")
        assert user.iitg_email == "asha.rao@iitgn.ac.in"
        assert user.is_verified is False
        assert user.is_admin is False
        assert len(user.verification_code) == 6 and user.verification_code.isdigit()
        assert user.verification_code_expires > utcnow() + timedelta(minutes=59)
        assert user.password_hash != "secret1"


@pytest.mark.parametrize(
    "overrides, fragment",
    [
        ({"iitgEmail": "asha@gmail.com"}, "must end with @iitgn.ac.in"),
        ({"personalEmail": "nope"}, "valid personal email"),
        ({"password": "12345"}, "at least 6 characters"),
        ({"name": ""}, "Name is required"),
        ({"rollNumber": " "}, "Roll number is required"),
    ],
)
def test_register_validation(app, overrides, fragment):
    with session_scope(app) as s:
        with pytest.raises(ValidationError) as exc:
            register_user(s, _registration(**overrides), institute_domain="iitgn.ac.in")
        assert fragment in exc.value.message


def test_register_rejects_duplicates(app):
    with session_scope(app) as s:
        register_user(s, _registration(), institute_domain="iitgn.ac.in")
    with session_scope(app) as s:
        with pytest.raises(ValidationError):
            register_user(
                s,
                _registration(iitgEmail="other@iitgn.ac.in", personalEmail="other@example.com"),
                institute_domain="iitgn.ac.in",
            )


def test_verify_code_flow(app):
    with session_scope(app) as s:
        code = register_user(s, _registration(), institute_domain="iitgn.ac.in").verification_code

    with session_scope(app) as s:
        with pytest.raises(ValidationError):
            authenticate(s, "asha@example.com", "secret1")
        with pytest.raises(ValidationError):
            verify_user_code(s, "asha.rao@iitgn.ac.in", "000000" if code != "000000" else "111111")
        with pytest.raises(NotFound):
            verify_user_code(s, "ghost@iitgn.ac.in", code)
        user = verify_user_code(s, "ASHA.RAO@iitgn.ac.in", code)
        assert user.is_verified is True
        assert user.verification_code is None

    with session_scope(app) as s:
        with pytest.raises(ValidationError):
            verify_user_code(s, "asha.rao@iitgn.ac.in", code)
        assert authenticate(s, "asha@example.com", "secret1").name == "Asha Rao"
        assert authenticate(s, "asha.rao@iitgn.ac.in", "secret1").name == "Asha Rao"
        with pytest.raises(ValidationError):
            authenticate(s, "asha@example.com", "wrong")


def test_expired_code_rejected(app):
    with session_scope(app) as s:
        user = register_user(s, _registration(), institute_domain="iitgn.ac.in")
        code = user.verification_code
    with session_scope(app) as s:
        with pytest.raises(ValidationError) as exc:
            verify_user_code(s, "asha.rao@iitgn.ac.in", code, now=utcnow() + timedelta(hours=2))
        assert exc.value.message == "Verification code expired."


# ---------- HTTP ----------

def test_register_verify_login_via_api(app):
    client = app.test_client()
    r = client.post("/api/auth/register", json=_registration())
    assert r.status_code == 201
    assert r.json["iitgEmail"] == "asha.rao@iitgn.ac.in"

    outbox = app.extensions["notifier"].outbox
    assert outbox[-1].to == "asha.rao@iitgn.ac.in"
    with session_scope(app) as s:
        code = s.query(User).one().verification_code
    assert code in outbox[-1].text

    r = client.post("/api/auth/login", json={"loginIdentifier": "asha@example.com", "password": "secret1"})
    assert r.status_code == 400
    assert "verify" in r.json["message"]

    r = client.post("/api/auth/verify-code", json={"iitgEmail": "asha.rao@iitgn.ac.in", "verificationCode": code})
    assert r.status_code == 200

    r = client.post("/api/auth/login", json={"loginIdentifier": "asha@example.com", "password": "secret1"})
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Asha Rao"
    assert r.json["csrfToken"]

    r = client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json["rollNumber"] == "22110001"

    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    assert client.get("/api/auth/me").status_code == 401

    with session_scope(app) as s:
        actions = {a.action for a in s.query(AuditEvent).all()}
    assert {"auth.register", "auth.verify", "auth.login_failed", "auth.login", "auth.logout"} <= actions


def test_login_rate_limited(app):
    with session_scope(app) as s:
        s.add(
            User(
                iitg_email="member@iitgn.ac.in",
                personal_email="member@example.com",
                password_hash=generate_password_hash("pw"),
                name="Member",
                roll_number="M1",
                is_verified=True,
            )
        )
    client = app.test_client()
    for _ in range(5):
        r = client.post("/api/auth/login", json={"loginIdentifier": "member@example.com", "password": "bad"})
        assert r.status_code == 400
    r = client.post("/api/auth/login", json={"loginIdentifier": "member@example.com", "password": "pw"})
    assert r.status_code == 429


def test_profile_update_requires_current_password(app):
    with session_scope(app) as s:
        s.add(
            User(
                iitg_email="member@iitgn.ac.in",
                personal_email="member@example.com",
                password_hash=generate_password_hash("oldpass"),
                name="Member",
                roll_number="M1",
                is_verified=True,
            )
        )
    client = app.test_client()
    r = client.post("/api/auth/login", json={"loginIdentifier": "member@iitgn.ac.in", "password": "oldpass"})
    assert r.status_code == 200

    r = client.put("/api/users/profile", json={"name": "Renamed", "phoneNumber": "12345"})
    assert r.status_code == 200
    assert r.json["name"] == "Renamed"
    assert r.json["phoneNumber"] == "12345"
    # Profile edits live under /api/users only.
    assert client.put("/api/auth/profile", json={"name": "Elsewhere"}).status_code == 404

    r = client.put("/api/users/profile", json={"password": "newpass"})
    assert r.status_code == 400
    r = client.put("/api/users/profile", json={"password": "newpass", "currentPassword": "wrong"})
    assert r.status_code == 401
    r = client.put("/api/users/profile", json={"password": "newpass", "currentPassword": "oldpass"})
    assert r.status_code == 200

    client.post("/api/auth/logout")
    r = client.post("/api/auth/login", json={"loginIdentifier": "member@iitgn.ac.in", "password": "newpass"})
    assert r.status_code == 200
    assert client.get("/api/users/profile").json["name"] == "Renamed"


def test_csrf_enforced_when_enabled(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'csrf.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CSRF_ENABLED", "1")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    client = app.test_client()

    r = client.post("/api/auth/logout")
    assert r.status_code == 400
    assert r.json["kind"] == "csrf_failed"

    token = client.get("/api/auth/csrf").json["csrfToken"]
    r = client.post("/api/auth/logout", headers={"X-CSRF-Token": token})
    assert r.status_code == 200
