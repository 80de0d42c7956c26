import pytest
from werkzeug.security import generate_password_hash

from app.palette import create_app
from app.palette import auth as auth_module
from app.palette.db import session_scope
from app.palette.models import Base, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    auth_module._login_attempts.clear()

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add(
            User(
                iitg_email="admin@iitgn.ac.in",
                personal_email="admin@example.com",
                password_hash=generate_password_hash("pw"),
                name="Admin",
                roll_number="A0001",
                is_admin=True,
                is_verified=True,
            )
        )

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").data == b"ok"


def test_login_and_admin_access(client):
    # Anonymous is rejected
    r = client.get("/api/contact")
    assert r.status_code == 401
    assert r.json["kind"] == "unauthorized"

    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200
    assert r.json["user"]["isAdmin"] is True

    r = client.get("/api/contact")
    assert r.status_code == 200
    assert r.json == []


def test_unknown_route_is_json_404(client):
    r = client.get("/api/nowhere")
    assert r.status_code == 404
    assert r.json["kind"] == "not_found"


def test_wrong_method_is_json_405(client):
    r = client.patch("/api/events/upcoming")
    assert r.status_code == 405
    assert r.json["kind"] == "method_not_allowed"
