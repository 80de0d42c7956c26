"""
Error taxonomy shared by services and blueprints.

Services raise these at the point of detection; the JSON error handler in
create_app() renders them as {"message", "kind"} with the matching status.
"""
from __future__ import annotations


class PaletteError(Exception):
    status_code = 500
    kind = "server_error"

    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> dict:
        out: dict[str, object] = {"message": self.message, "kind": self.kind}
        if self.errors:
            out["errors"] = list(self.errors)
        return out


class ValidationError(PaletteError):
    status_code = 400
    kind = "validation_error"

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationError":
        return cls("; ".join(errors), errors=errors)


class Unauthorized(PaletteError):
    status_code = 401
    kind = "unauthorized"


class Forbidden(PaletteError):
    status_code = 403
    kind = "forbidden"


class NotFound(PaletteError):
    status_code = 404
    kind = "not_found"


class Conflict(PaletteError):
    status_code = 409
    kind = "conflict"


class ServerError(PaletteError):
    pass


# Registration outcomes
class AlreadyRegistered(Conflict):
    kind = "already_registered"


class EventFull(Conflict):
    kind = "event_full"


class EventInPast(ValidationError):
    kind = "event_in_past"


class NotRegistered(ValidationError):
    kind = "not_registered"
