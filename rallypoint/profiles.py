"""Section profile fields: schema management and member answers."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Mapping, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .collaborators import ProfileStore
from .errors import NoSuchField, NotAMember, ProfileValidationError
from .fields import build_spec, join_multiselect, validate_field_value
from .models import SectionMember, SectionProfileData, SectionProfileField
from .sections import get_section, is_approved_member, list_members, require_admin
from .utils import field_name_from_label, is_blank, utcnow

logger = logging.getLogger("uvicorn.error")

FIELD_UPDATABLE = {
    "field_label",
    "field_options",
    "placeholder",
    "help_text",
    "default_value",
    "is_required",
    "min_length",
    "max_length",
    "validation_pattern",
    "is_active",
}


def _check_lengths(min_length: int | None, max_length: int | None) -> None:
    for name, value in (("min_length", min_length), ("max_length", max_length)):
        if value is not None and value <= 0:
            raise ValueError(f"{name} must be a positive number")
    if min_length and max_length and min_length > max_length:
        raise ValueError("min_length cannot exceed max_length")


def _check_pattern(pattern: str | None) -> None:
    if not pattern:
        return
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"Invalid validation pattern: {exc}") from exc


def _next_display_order(session: Session, section_id: str) -> int:
    stmt = select(func.max(SectionProfileField.display_order)).where(
        SectionProfileField.section_id == section_id
    )
    current = session.scalar(stmt)
    return 0 if current is None else current + 1


def get_field(session: Session, section_id: str, field_id: str) -> SectionProfileField:
    profile_field = session.get(SectionProfileField, field_id)
    if not profile_field or profile_field.section_id != section_id:
        raise NoSuchField()
    return profile_field


def list_fields(
    session: Session, section_id: str, *, include_inactive: bool = False
) -> Sequence[SectionProfileField]:
    stmt = (
        select(SectionProfileField)
        .where(SectionProfileField.section_id == section_id)
        .order_by(
            SectionProfileField.display_order.asc(),
            SectionProfileField.created_at.asc(),
        )
    )
    if not include_inactive:
        stmt = stmt.where(SectionProfileField.is_active.is_(True))
    return session.scalars(stmt).all()


def _field_name_taken(session: Session, section_id: str, name: str) -> bool:
    stmt = select(SectionProfileField.id).where(
        SectionProfileField.section_id == section_id,
        SectionProfileField.field_name == name,
    )
    return session.scalars(stmt).first() is not None


def _positional_field_name(session: Session, section_id: str) -> str:
    """``field_<n>`` for labels with no ASCII letters or digits."""
    stmt = select(func.count()).where(SectionProfileField.section_id == section_id)
    position = (session.scalar(stmt) or 0) + 1
    while _field_name_taken(session, section_id, f"field_{position}"):
        position += 1
    return f"field_{position}"


def define_field(
    session: Session,
    *,
    section_id: str,
    actor_id: str,
    field_label: str,
    field_type: str,
    field_name: str | None = None,
    field_options: Iterable[object] = (),
    placeholder: str | None = None,
    help_text: str | None = None,
    default_value: str | None = None,
    is_required: bool = False,
    min_length: int | None = None,
    max_length: int | None = None,
    validation_pattern: str | None = None,
) -> SectionProfileField:
    """Append a custom field to the section's profile schema."""
    require_admin(session, section_id, actor_id)
    label = (field_label or "").strip()
    if not label:
        raise ValueError("Field label is required")
    spec = build_spec(field_type, field_options)
    if field_name:
        name = field_name_from_label(field_name)
        if not name:
            raise ValueError("Field name must contain letters or digits")
    else:
        name = field_name_from_label(label) or _positional_field_name(
            session, section_id
        )
    _check_lengths(min_length, max_length)
    _check_pattern(validation_pattern)

    if _field_name_taken(session, section_id, name):
        raise ValueError(f"A field named {name!r} already exists in this section")

    options = [option.as_dict() for option in getattr(spec, "options", ())]
    profile_field = SectionProfileField(
        section_id=section_id,
        field_name=name,
        field_label=label,
        field_type=spec.field_type,
        field_options=options,
        placeholder=placeholder,
        help_text=help_text,
        default_value=default_value,
        is_required=bool(is_required),
        min_length=min_length,
        max_length=max_length,
        validation_pattern=validation_pattern or None,
        display_order=_next_display_order(session, section_id),
        is_active=True,
        created_by=actor_id,
    )
    session.add(profile_field)
    session.flush()
    logger.info(
        "Field %s (%s) defined on section %s by %s",
        name,
        spec.field_type,
        section_id,
        actor_id,
    )
    return profile_field


def update_field(
    session: Session, *, section_id: str, field_id: str, actor_id: str, **changes
) -> SectionProfileField:
    require_admin(session, section_id, actor_id)
    profile_field = get_field(session, section_id, field_id)
    unknown = set(changes) - FIELD_UPDATABLE
    if unknown:
        raise ValueError(f"Cannot update field attributes: {', '.join(sorted(unknown))}")

    if "field_label" in changes and not (changes["field_label"] or "").strip():
        raise ValueError("Field label is required")
    if "field_options" in changes:
        spec = build_spec(profile_field.field_type, changes["field_options"])
        changes["field_options"] = [
            option.as_dict() for option in getattr(spec, "options", ())
        ]
    _check_lengths(
        changes.get("min_length", profile_field.min_length),
        changes.get("max_length", profile_field.max_length),
    )
    _check_pattern(changes.get("validation_pattern"))

    for key, value in changes.items():
        setattr(profile_field, key, value)
    profile_field.updated_at = utcnow()
    session.add(profile_field)
    session.flush()
    return profile_field


def deactivate_field(
    session: Session, *, section_id: str, field_id: str, actor_id: str
) -> SectionProfileField:
    return update_field(
        session,
        section_id=section_id,
        field_id=field_id,
        actor_id=actor_id,
        is_active=False,
    )


def reorder_fields(
    session: Session, *, section_id: str, actor_id: str, field_ids: Sequence[str]
) -> Sequence[SectionProfileField]:
    """Assign ``display_order`` 0..n-1 following ``field_ids``.

    Fields left out of ``field_ids`` keep their relative order after the
    listed ones.
    """
    require_admin(session, section_id, actor_id)
    current = list(list_fields(session, section_id, include_inactive=True))
    by_id = {f.id: f for f in current}
    if len(set(field_ids)) != len(field_ids):
        raise ValueError("Field ids must not repeat")
    for field_id in field_ids:
        if field_id not in by_id:
            raise NoSuchField()
    listed = set(field_ids)
    ordered = [by_id[field_id] for field_id in field_ids] + [
        f for f in current if f.id not in listed
    ]
    for position, profile_field in enumerate(ordered):
        profile_field.display_order = position
        session.add(profile_field)
    session.flush()
    return ordered


def _normalize_answer(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return join_multiselect(value)
    return str(value)


def save_profile_data(
    session: Session,
    *,
    user_id: str,
    section_id: str,
    answers: Mapping[str, object],
) -> dict[str, str]:
    """Validate and store a batch of answers, all or nothing.

    Stored values are trimmed; a blank answer deletes the stored row.
    """
    get_section(session, section_id)
    if not is_approved_member(session, section_id, user_id):
        raise NotAMember("Only approved members can fill in this section's profile.")

    fields = {f.id: f for f in list_fields(session, section_id)}
    normalized: dict[str, str] = {}
    for field_id, raw_value in answers.items():
        profile_field = fields.get(field_id)
        if profile_field is None:
            raise NoSuchField(f"Unknown profile field {field_id}.")
        value = _normalize_answer(raw_value)
        result = validate_field_value(value, profile_field)
        if not result.is_valid:
            logger.info(
                "Rejected profile answers of %s in section %s: %s on field %s",
                user_id,
                section_id,
                result.error,
                field_id,
            )
            raise ProfileValidationError(
                field_id=field_id, kind=result.error, message=result.message
            )
        normalized[field_id] = value.strip()

    if not normalized:
        return get_profile_data(session, user_id=user_id, section_id=section_id)

    existing_stmt = select(SectionProfileData).where(
        SectionProfileData.user_id == user_id,
        SectionProfileData.field_id.in_(list(normalized)),
    )
    existing = {row.field_id: row for row in session.scalars(existing_stmt)}
    now = utcnow()
    for field_id, value in normalized.items():
        row = existing.get(field_id)
        if not value:
            if row is not None:
                session.delete(row)
            continue
        if row is None:
            row = SectionProfileData(
                user_id=user_id,
                section_id=section_id,
                field_id=field_id,
                created_at=now,
            )
        row.value = value
        row.updated_at = now
        session.add(row)
    session.flush()
    logger.info(
        "Saved %d profile answers for %s in section %s",
        len(normalized),
        user_id,
        section_id,
    )
    return get_profile_data(session, user_id=user_id, section_id=section_id)


def get_profile_data(
    session: Session, *, user_id: str, section_id: str
) -> dict[str, str]:
    stmt = select(SectionProfileData).where(
        SectionProfileData.user_id == user_id,
        SectionProfileData.section_id == section_id,
    )
    return {row.field_id: row.value or "" for row in session.scalars(stmt)}


def completion_percent(session: Session, *, user_id: str, section_id: str) -> int:
    """Share of active required fields answered, 0-100."""
    required = [f for f in list_fields(session, section_id) if f.is_required]
    if not required:
        return 100
    answers = get_profile_data(session, user_id=user_id, section_id=section_id)
    filled = sum(1 for f in required if not is_blank(answers.get(f.id)))
    return round(filled * 100 / len(required))


def member_directory(
    session: Session,
    section_id: str,
    *,
    viewer_id: str | None,
    profiles: ProfileStore | None = None,
) -> list[dict]:
    """Approved members with their answers keyed by field name.

    Answers are shown only to approved members of the section.
    """
    section = get_section(session, section_id)
    viewer_is_member = is_approved_member(session, section_id, viewer_id)
    if not section.is_public and not viewer_is_member:
        raise NotAMember("Join this section to see its members.")

    fields = list_fields(session, section_id)
    names = {f.id: f.field_name for f in fields}
    data_stmt = select(SectionProfileData).where(
        SectionProfileData.section_id == section_id
    )
    answers_by_user: dict[str, dict[str, str]] = {}
    for row in session.scalars(data_stmt):
        if row.field_id in names:
            answers_by_user.setdefault(row.user_id, {})[names[row.field_id]] = (
                row.value or ""
            )

    directory: list[dict] = []
    for member in list_members(session, section_id, status="approved"):
        entry = _member_entry(member, profiles)
        entry["section_data"] = (
            answers_by_user.get(member.user_id, {}) if viewer_is_member else {}
        )
        directory.append(entry)
    return directory


def _member_entry(member: SectionMember, profiles: ProfileStore | None) -> dict:
    entry = {
        "user_id": member.user_id,
        "is_admin": member.is_admin,
        "joined_at": member.joined_at.isoformat(),
        "full_name": None,
        "avatar_url": None,
    }
    profile = profiles.get_profile(member.user_id) if profiles else None
    if profile and not profile.is_private:
        entry["full_name"] = profile.full_name
        entry["avatar_url"] = profile.avatar_url
    return entry
