"""Error taxonomy shared by the membership, profile, RSVP and subscription cores.

Every error carries a stable ``kind`` string and the HTTP status the JSON API
answers with. ``as_dict`` produces the ``{"error": ..., "message": ...}`` body
returned to clients.
"""

from __future__ import annotations


class RallypointError(Exception):
    """Base class for rejected operations."""

    kind = "Error"
    status_code = 400
    default_message = "The request could not be completed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class DuplicateSectionName(RallypointError):
    kind = "DuplicateSectionName"
    status_code = 409
    default_message = "You already have a section with that name."


class AlreadyMember(RallypointError):
    kind = "AlreadyMember"
    status_code = 409
    default_message = "You already have a membership record for this section."


class NotAuthorized(RallypointError):
    kind = "NotAuthorized"
    status_code = 403
    default_message = "You are not allowed to do that."


class NoSuchRequest(RallypointError):
    kind = "NoSuchRequest"
    status_code = 404
    default_message = "There is no pending join request for that member."


class NotAMember(RallypointError):
    kind = "NotAMember"
    status_code = 404
    default_message = "You are not a member of this section."


class LastAdmin(RallypointError):
    kind = "LastAdmin"
    status_code = 409
    default_message = "A section must keep at least one admin."


class AlreadyInvited(RallypointError):
    kind = "AlreadyInvited"
    status_code = 409
    default_message = "That user already has a pending invitation to this section."


class NoSuchInvitation(RallypointError):
    kind = "NoSuchInvitation"
    status_code = 404
    default_message = "There is no pending invitation with that id."


class CapacityExceeded(RallypointError):
    kind = "CapacityExceeded"
    status_code = 409
    default_message = "This event has reached its maximum number of attendees."


class AlreadySubscribed(RallypointError):
    kind = "AlreadySubscribed"
    status_code = 409
    default_message = "You are already subscribed to this group."


class NotSubscribed(RallypointError):
    kind = "NotSubscribed"
    status_code = 404
    default_message = "You are not subscribed to this group."


class NoSuchSection(RallypointError):
    kind = "NoSuchSection"
    status_code = 404
    default_message = "Section not found."


class NoSuchEvent(RallypointError):
    kind = "NoSuchEvent"
    status_code = 404
    default_message = "Event not found."


class NoSuchField(RallypointError):
    kind = "NoSuchField"
    status_code = 404
    default_message = "Profile field not found."


class AlreadyCohost(RallypointError):
    kind = "AlreadyCohost"
    status_code = 409
    default_message = "That user already co-hosts this event."


class NoSuchCohost(RallypointError):
    kind = "NoSuchCohost"
    status_code = 404
    default_message = "That user is not a co-host of this event."


class NoSuchRSVP(RallypointError):
    kind = "NoSuchRSVP"
    status_code = 404
    default_message = "You have not responded to this event."


# Field-level validation kinds. ``validate_field_value`` reports these as
# structured results; they are only raised through ProfileValidationError.


class FieldValueError(RallypointError):
    kind = "InvalidValue"


class RequiredFieldMissing(FieldValueError):
    kind = "RequiredFieldMissing"
    default_message = "This field is required."


class InvalidNumber(FieldValueError):
    kind = "InvalidNumber"
    default_message = "Please enter a valid number."


class InvalidUrl(FieldValueError):
    kind = "InvalidUrl"
    default_message = "Please enter a valid URL."


class InvalidEmail(FieldValueError):
    kind = "InvalidEmail"
    default_message = "Please enter a valid email address."


class InvalidOption(FieldValueError):
    kind = "InvalidOption"
    default_message = "Please select a valid option."


class TooLong(FieldValueError):
    kind = "TooLong"
    default_message = "This value is too long."


class TooShort(FieldValueError):
    kind = "TooShort"
    default_message = "This value is too short."


class InvalidFormat(FieldValueError):
    kind = "InvalidFormat"
    default_message = "This value has an invalid format."


FIELD_ERRORS: dict[str, type[FieldValueError]] = {
    cls.kind: cls
    for cls in (
        RequiredFieldMissing,
        InvalidNumber,
        InvalidUrl,
        InvalidEmail,
        InvalidOption,
        TooLong,
        TooShort,
        InvalidFormat,
    )
}


class ProfileValidationError(RallypointError):
    """Raised when a batch of section profile answers contains an invalid value."""

    status_code = 400

    def __init__(self, *, field_id: str, kind: str, message: str):
        self.field_id = field_id
        self.kind = kind
        super().__init__(message)

    def as_dict(self) -> dict[str, str]:
        payload = super().as_dict()
        payload["field_id"] = self.field_id
        return payload
