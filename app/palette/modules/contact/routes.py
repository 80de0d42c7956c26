from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.palette.db import db_session
from app.palette.modules.contact.service import delete_contact, list_contacts, submit_contact
from app.palette.rbac import require_admin
from app.palette.web import request_payload

bp = Blueprint("contact", __name__)


@bp.post("")
def contact_submit():
    s = db_session()
    submit_contact(s, request_payload())
    s.commit()
    return jsonify({"message": "Contact form submitted successfully"}), 201


@bp.get("")
@require_admin
def contact_list():
    s = db_session()
    return jsonify([c.to_dict() for c in list_contacts(s)])


@bp.delete("/<int:submission_id>")
@require_admin
def contact_delete(submission_id: int):
    s = db_session()
    delete_contact(s, submission_id, g.current_user)
    s.commit()
    return jsonify({"message": "Contact submission removed successfully"})
