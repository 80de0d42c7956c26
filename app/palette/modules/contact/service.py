from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.palette.audit import record_event
from app.palette.errors import NotFound, ValidationError
from app.palette.models import User
from app.palette.modules.contact.models import ContactSubmission
from app.palette.utils import clean_str, utcnow

REQUIRED_FIELDS = ("name", "email", "subject", "message")


def validate_contact_payload(payload: dict) -> list[str]:
    missing = [f for f in REQUIRED_FIELDS if not clean_str(payload.get(f))]
    if missing:
        return [f"Please fill in all fields: {', '.join(missing)}"]
    if "@" not in clean_str(payload.get("email")):
        return ["Please provide a valid email address"]
    return []


def submit_contact(s: Session, payload: dict) -> ContactSubmission:
    errors = validate_contact_payload(payload)
    if errors:
        raise ValidationError.from_errors(errors)
    submission = ContactSubmission(
        name=clean_str(payload.get("name")),
        email=clean_str(payload.get("email")).lower(),
        subject=clean_str(payload.get("subject")),
        message=clean_str(payload.get("message")),
        created_at=utcnow(),
    )
    s.add(submission)
    s.flush()
    return submission


def list_contacts(s: Session) -> list[ContactSubmission]:
    stmt = select(ContactSubmission).order_by(ContactSubmission.created_at.desc(), ContactSubmission.id.desc())
    return list(s.scalars(stmt).all())


def delete_contact(s: Session, submission_id: int, user: User) -> None:
    submission = s.get(ContactSubmission, submission_id)
    if not submission:
        raise NotFound("Contact submission not found")
    record_event(
        s,
        actor=user,
        action="contact.delete",
        entity_type="ContactSubmission",
        entity_id=str(submission.id),
        metadata={"email": submission.email, "subject": submission.subject},
    )
    s.delete(submission)
