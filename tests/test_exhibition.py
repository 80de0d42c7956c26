import io

import pytest
from werkzeug.security import generate_password_hash

from app.palette import create_app
from app.palette import auth as auth_module
from app.palette.db import session_scope
from app.palette.errors import NotFound, ValidationError
from app.palette.models import Base, User
from app.palette.modules.exhibition.service import create_item, get_item, list_items, update_item

PNG = b"\x89PNG\r\n\x1a\n" + b"\x01" * 16


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_ROOT", str(tmp_path / "uploads"))
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
    return app


ITEM = {
    "title": "Monsoon Studies",
    "description": "Twelve watercolours painted over one monsoon.",
    "date": "12 Aug 2025",
    "time": "5 PM",
    "venue": "Library Atrium",
    "credits": "Palette Club",
}


def test_create_requires_every_field_and_image(app):
    with session_scope(app) as s:
        admin = s.query(User).one()
        with pytest.raises(ValidationError) as exc:
            create_item(s, dict(ITEM, venue=""), "/uploads/exhibition/a.png", admin)
        assert "venue" in exc.value.message
        with pytest.raises(ValidationError):
            create_item(s, ITEM, None, admin)


def test_partial_update_keeps_blank_fields(app):
    with session_scope(app) as s:
        admin = s.query(User).one()
        item = create_item(s, ITEM, "/uploads/exhibition/a.png", admin)
        update_item(s, item, {"title": "Monsoon Studies II", "venue": ""}, admin)
        assert item.title == "Monsoon Studies II"
        assert item.venue == "Library Atrium"
        assert item.image_url == "/uploads/exhibition/a.png"
        assert [i.id for i in list_items(s)] == [item.id]
        with pytest.raises(NotFound):
            get_item(s, 999)


def test_exhibition_via_api(app, tmp_path):
    admin = app.test_client()
    r = admin.post("/api/auth/login", json={"loginIdentifier": "admin@iitgn.ac.in", "password": "pw"})
    assert r.status_code == 200

    anon = app.test_client()
    data = dict(ITEM, image=(io.BytesIO(PNG), "monsoon.png", "image/png"))
    assert anon.post("/api/exhibition", data=data, content_type="multipart/form-data").status_code == 401

    data = dict(ITEM, image=(io.BytesIO(PNG), "monsoon.png", "image/png"))
    r = admin.post("/api/exhibition", data=data, content_type="multipart/form-data")
    assert r.status_code == 201
    item = r.json
    old_key = item["imageUrl"][len("/uploads/"):]
    assert old_key.startswith("exhibition/")
    assert (tmp_path / "uploads" / old_key).exists()

    assert [i["id"] for i in anon.get("/api/exhibition").json] == [item["id"]]
    assert anon.get(f"/api/exhibition/{item['id']}").json["venue"] == "Library Atrium"

    r = admin.put(
        f"/api/exhibition/{item['id']}",
        data={"time": "6 PM", "image": (io.BytesIO(PNG), "monsoon-2.png", "image/png")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 200
    assert r.json["time"] == "6 PM"
    assert r.json["title"] == ITEM["title"]
    assert r.json["imageUrl"].endswith("-monsoon-2.png")
    assert not (tmp_path / "uploads" / old_key).exists()

    new_key = r.json["imageUrl"][len("/uploads/"):]
    assert admin.delete(f"/api/exhibition/{item['id']}").status_code == 200
    assert not (tmp_path / "uploads" / new_key).exists()
    assert anon.get(f"/api/exhibition/{item['id']}").status_code == 404
