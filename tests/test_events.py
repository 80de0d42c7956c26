import io
from datetime import datetime, timezone

import pytest
from werkzeug.security import generate_password_hash

from app.palette import create_app
from app.palette import auth as auth_module
from app.palette.db import session_scope
from app.palette.errors import NotFound, ValidationError
from app.palette.models import AuditEvent, Base, User
from app.palette.modules.events.models import Event, EventRegistration
from app.palette.modules.events.registration import apply_to_event
from app.palette.modules.events.service import (
    create_event,
    delete_event,
    list_past,
    list_upcoming,
    update_event,
    validate_event_payload,
)
from app.palette.storage import LocalStorage

UTC = timezone.utc
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_ROOT", str(tmp_path / "uploads"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    auth_module._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add_all([
            User(
                iitg_email="admin@iitgn.ac.in",
                personal_email="admin@example.com",
                password_hash=generate_password_hash("pw"),
                name="Admin",
                roll_number="A0001",
                is_admin=True,
                is_verified=True,
            ),
            User(
                iitg_email="member@iitgn.ac.in",
                personal_email="member@example.com",
                password_hash=generate_password_hash("pw"),
                name="Member",
                roll_number="M0001",
                is_verified=True,
            ),
        ])
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="admin@iitgn.ac.in"):
    r = client.post("/api/auth/login", json={"loginIdentifier": email, "password": "pw"})
    assert r.status_code == 200
    return r


def _admin(s) -> User:
    return s.query(User).filter(User.iitg_email == "admin@iitgn.ac.in").one()


def _payload(**overrides):
    payload = {
        "title": "Watercolour Basics",
        "description": "An introduction to wet-on-wet technique.",
        "date": "2099-08-10T10:00:00.000Z",
        "location": "Studio 1",
        "type": "workshop",
    }
    payload.update(overrides)
    return payload


def _event(s, admin, *, date, end_date=None, type="workshop", title="E", max_participants=None):
    ev = Event(
        title=title,
        description="d",
        location="l",
        type=type,
        date=date,
        end_date=end_date,
        image_url="/uploads/events/x.png",
        max_participants=max_participants,
        created_by_user_id=admin.id,
    )
    s.add(ev)
    s.flush()
    return ev


# ---------- Validation ----------

def test_validate_reports_every_missing_field():
    errors = validate_event_payload({}, has_image=False)
    assert any("title" in e and "location" in e for e in errors)
    assert "Event image is required" in errors


@pytest.mark.parametrize(
    "overrides, fragment",
    [
        ({"type": "party"}, "Invalid event type"),
        ({"title": "x" * 101}, "Title cannot be more than 100"),
        ({"description": "x" * 2001}, "Description cannot be more than 2000"),
        ({"date": "tomorrow"}, "Invalid start date"),
        ({"endDate": "2099-08-09T10:00:00Z"}, "End date cannot be before start date"),
        ({"maxParticipants": "0"}, "Max participants must be a positive number"),
        ({"maxParticipants": "2.5"}, "Max participants must be a positive number"),
        ({"maxParticipants": "ten"}, "Max participants must be a positive number"),
    ],
)
def test_validate_rejects_bad_fields(overrides, fragment):
    errors = validate_event_payload(_payload(**overrides), has_image=True)
    assert any(fragment in e for e in errors), errors


def test_validate_accepts_complete_payload():
    assert validate_event_payload(_payload(endDate="2099-08-11T10:00:00Z", maxParticipants="30"), has_image=True) == []


# ---------- Service ----------

def test_create_event_round_trip(app):
    with session_scope(app) as s:
        admin = _admin(s)
        ev = create_event(s, _payload(maxParticipants="25"), "/uploads/events/p.png", admin)
        event_id = ev.id

    with session_scope(app) as s:
        ev = s.get(Event, event_id)
        d = ev.to_dict()
        assert d["title"] == "Watercolour Basics"
        assert d["date"] == "2099-08-10T10:00:00.000Z"
        assert d["endDate"] is None
        assert d["maxParticipants"] == 25
        assert d["registeredParticipants"] == []
        assert d["status"] == "upcoming"
        assert d["imageUrl"] == "/uploads/events/p.png"
        audit = s.query(AuditEvent).filter(AuditEvent.action == "event.create").one()
        assert audit.entity_id == str(event_id)


def test_create_event_without_image_fails(app):
    with session_scope(app) as s:
        with pytest.raises(ValidationError) as exc:
            create_event(s, _payload(), None, _admin(s))
        assert "Event image is required" in exc.value.errors


def test_upcoming_and_past_partition_events(app):
    # 19:00Z on 10 Aug is 00:30 IST on 11 Aug, so "today" starts at 10 Aug 18:30Z.
    now = datetime(2025, 8, 10, 19, 0, tzinfo=UTC)
    with session_scope(app) as s:
        admin = _admin(s)
        _event(s, admin, title="long-ago", date=datetime(2025, 8, 1))
        _event(s, admin, title="yesterday-local", date=datetime(2025, 8, 10, 12, 0))
        _event(s, admin, title="at-boundary", date=datetime(2025, 8, 10, 18, 30))
        _event(s, admin, title="multi-day", date=datetime(2025, 8, 5), end_date=datetime(2025, 8, 12))
        _event(s, admin, title="ended-before", date=datetime(2025, 8, 5), end_date=datetime(2025, 8, 10, 18, 29))
        _event(s, admin, title="next-week", date=datetime(2025, 8, 17), type="competition")

    with session_scope(app) as s:
        upcoming = [e.title for e in list_upcoming(s, now=now)]
        past = [e.title for e in list_past(s, now=now)]

        assert upcoming == ["multi-day", "at-boundary", "next-week"]
        assert past == ["yesterday-local", "ended-before", "long-ago"]
        assert set(upcoming).isdisjoint(past)
        assert len(upcoming) + len(past) == s.query(Event).count()

        assert [e.title for e in list_upcoming(s, event_type="competition", now=now)] == ["next-week"]
        # Unknown type filters are ignored.
        assert len(list_upcoming(s, event_type="gala", now=now)) == 3


def test_update_event_partial_and_clears_end_date(app):
    with session_scope(app) as s:
        admin = _admin(s)
        ev = _event(s, admin, date=datetime(2099, 8, 10), end_date=datetime(2099, 8, 12), max_participants=5)
        update_event(s, ev, {"title": "Renamed", "endDate": "", "maxParticipants": ""}, admin)
        assert ev.title == "Renamed"
        assert ev.end_date is None
        assert ev.max_participants is None
        assert ev.location == "l"


def test_update_event_rejects_capacity_below_registrations(app):
    with session_scope(app) as s:
        admin = _admin(s)
        member = s.query(User).filter(User.iitg_email == "member@iitgn.ac.in").one()
        ev = _event(s, admin, date=datetime(2099, 8, 10), max_participants=5)
        s.add_all([
            EventRegistration(event_id=ev.id, user_id=admin.id),
            EventRegistration(event_id=ev.id, user_id=member.id),
        ])
        s.flush()
        s.expire(ev, ["registrations"])

        with pytest.raises(ValidationError) as exc:
            update_event(s, ev, {"maxParticipants": 1}, admin)
        assert "below current registrations (2)" in exc.value.message

        update_event(s, ev, {"maxParticipants": 2}, admin)
        assert ev.max_participants == 2


def test_capacity_check_sees_registrations_committed_by_another_session(app):
    with session_scope(app) as s:
        admin = _admin(s)
        ev = _event(s, admin, date=datetime(2099, 8, 10), max_participants=5)
        s.add(EventRegistration(event_id=ev.id, user_id=admin.id))
        event_id = ev.id

    with session_scope(app) as s:
        admin = _admin(s)
        ev = s.get(Event, event_id)
        assert len(ev.registrations) == 1

        # A member applies and commits while the admin still holds the stale event.
        with session_scope(app) as other:
            member = other.query(User).filter(User.iitg_email == "member@iitgn.ac.in").one()
            apply_to_event(other, event_id, member)

        with pytest.raises(ValidationError) as exc:
            update_event(s, ev, {"maxParticipants": 1}, admin)
        assert "below current registrations (2)" in exc.value.message
        assert len(ev.registered_participant_ids) == 2

    with session_scope(app) as s:
        ev = s.get(Event, event_id)
        assert ev.max_participants == 5
        assert len(ev.registrations) == 2


def test_update_event_rejects_end_before_new_start(app):
    with session_scope(app) as s:
        admin = _admin(s)
        ev = _event(s, admin, date=datetime(2099, 8, 10), end_date=datetime(2099, 8, 12))
        with pytest.raises(ValidationError):
            update_event(s, ev, {"date": "2099-08-20T00:00:00Z"}, admin)
        with pytest.raises(ValidationError):
            update_event(s, ev, {"status": "postponed"}, admin)


def test_delete_event_releases_blob_and_cascades(app, tmp_path):
    storage = LocalStorage(root=tmp_path / "uploads")
    storage.put_bytes("events/poster.png", PNG)

    with session_scope(app) as s:
        admin = _admin(s)
        ev = _event(s, admin, date=datetime(2099, 8, 10))
        ev.image_url = "/uploads/events/poster.png"
        s.add(EventRegistration(event_id=ev.id, user_id=admin.id))
        s.flush()
        event_id = ev.id

    with session_scope(app) as s:
        delete_event(s, s.get(Event, event_id), _admin(s), storage)

    assert not storage.exists("events/poster.png")
    with session_scope(app) as s:
        assert s.get(Event, event_id) is None
        assert s.query(EventRegistration).count() == 0


def test_delete_event_survives_missing_blob(app, tmp_path):
    storage = LocalStorage(root=tmp_path / "uploads")
    with session_scope(app) as s:
        admin = _admin(s)
        ev = _event(s, admin, date=datetime(2099, 8, 10))
        delete_event(s, ev, admin, storage)
    with session_scope(app) as s:
        assert s.query(Event).count() == 0


# ---------- HTTP ----------

def _create_via_api(client, **overrides):
    data = _payload(**overrides)
    data["image"] = (io.BytesIO(PNG), "poster.png", "image/png")
    return client.post("/api/events", data=data, content_type="multipart/form-data")


def test_create_requires_admin(client):
    r = _create_via_api(client)
    assert r.status_code == 401

    _login(client, "member@iitgn.ac.in")
    r = _create_via_api(client)
    assert r.status_code == 403
    assert r.json["kind"] == "forbidden"


def test_create_get_and_serve_image(client):
    _login(client)
    r = _create_via_api(client, maxParticipants="10")
    assert r.status_code == 201
    event = r.json["event"]
    assert event["maxParticipants"] == 10
    assert event["imageUrl"].startswith("/uploads/events/")
    assert event["imageUrl"].endswith("-poster.png")

    r = client.get(f"/api/events/{event['id']}")
    assert r.status_code == 200
    assert r.json["title"] == "Watercolour Basics"

    r = client.get(event["imageUrl"])
    assert r.status_code == 200
    assert r.data == PNG

    r = client.get("/api/events/upcoming")
    assert [e["id"] for e in r.json] == [event["id"]]
    r = client.get("/api/events/workshops")
    assert [e["id"] for e in r.json] == [event["id"]]
    r = client.get("/api/events/competitions")
    assert r.json == []
    r = client.get("/api/events/past")
    assert r.json == []


def test_create_rejects_non_png_and_bad_payload(client, tmp_path):
    _login(client)
    data = _payload()
    data["image"] = (io.BytesIO(b"GIF89a"), "poster.gif", "image/gif")
    r = client.post("/api/events", data=data, content_type="multipart/form-data")
    assert r.status_code == 400

    r = _create_via_api(client, type="party")
    assert r.status_code == 400
    assert r.json["kind"] == "validation_error"
    assert not (tmp_path / "uploads" / "events").exists()


def test_get_unknown_event_is_404(client):
    r = client.get("/api/events/9999")
    assert r.status_code == 404
    assert r.json["message"] == "Event not found"


def test_update_and_delete_via_api(client, tmp_path):
    _login(client)
    event = _create_via_api(client).json["event"]
    old_key = event["imageUrl"][len("/uploads/"):]
    assert (tmp_path / "uploads" / old_key).exists()

    r = client.put(f"/api/events/{event['id']}", json={"location": "Main Hall", "maxParticipants": 3})
    assert r.status_code == 200
    assert r.json["event"]["location"] == "Main Hall"
    assert r.json["event"]["maxParticipants"] == 3

    r = client.put(
        f"/api/events/{event['id']}",
        data={"image": (io.BytesIO(PNG), "new.png", "image/png")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 200
    assert r.json["event"]["imageUrl"].endswith("-new.png")
    assert not (tmp_path / "uploads" / old_key).exists()

    r = client.delete(f"/api/events/{event['id']}")
    assert r.status_code == 200
    assert client.get(f"/api/events/{event['id']}").status_code == 404
