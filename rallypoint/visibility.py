"""Which section memberships a viewer may see on a member's profile."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import NotAMember
from .models import Section, SectionMember, SectionVisibility
from .sections import get_section, is_approved_member
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

ViewMode = Literal["public", "self_edit", "preview"]


@dataclass(frozen=True)
class ViewerContext:
    mode: ViewMode = "public"
    preview_section_id: str | None = None

    def __post_init__(self):
        if self.mode not in ("public", "self_edit", "preview"):
            raise ValueError(f"Unknown viewer mode {self.mode!r}")
        if self.mode == "preview" and not self.preview_section_id:
            raise ValueError("Preview mode needs a section id")

    @classmethod
    def public(cls) -> "ViewerContext":
        return cls("public")

    @classmethod
    def self_edit(cls) -> "ViewerContext":
        return cls("self_edit")

    @classmethod
    def preview(cls, section_id: str) -> "ViewerContext":
        return cls("preview", section_id)


def _visibility_row(
    session: Session, *, user_id: str, section_id: str
) -> SectionVisibility | None:
    stmt = select(SectionVisibility).where(
        SectionVisibility.user_id == user_id,
        SectionVisibility.section_id == section_id,
    )
    return session.scalars(stmt).first()


def show_membership(session: Session, *, user_id: str, section_id: str) -> bool:
    row = _visibility_row(session, user_id=user_id, section_id=section_id)
    return True if row is None else bool(row.show_membership)


def set_show_membership(
    session: Session, *, user_id: str, section_id: str, show: bool
) -> SectionVisibility:
    get_section(session, section_id)
    if not is_approved_member(session, section_id, user_id):
        raise NotAMember()
    row = _visibility_row(session, user_id=user_id, section_id=section_id)
    if row is None:
        row = SectionVisibility(user_id=user_id, section_id=section_id)
    row.show_membership = bool(show)
    row.updated_at = utcnow()
    session.add(row)
    session.flush()
    logger.info(
        "User %s %s membership of section %s",
        user_id,
        "shows" if show else "hides",
        section_id,
    )
    return row


def visible_sections(
    session: Session, user_id: str, viewer: ViewerContext
) -> Sequence[Section]:
    """Sections of the user's approved memberships that ``viewer`` may see.

    Read-only: preview never touches stored visibility flags.
    """
    stmt = (
        select(Section, SectionVisibility.show_membership)
        .join(SectionMember, SectionMember.section_id == Section.id)
        .outerjoin(
            SectionVisibility,
            (SectionVisibility.section_id == Section.id)
            & (SectionVisibility.user_id == user_id),
        )
        .where(SectionMember.user_id == user_id, SectionMember.status == "approved")
        .order_by(Section.name.asc(), Section.id.asc())
    )
    if viewer.mode == "preview":
        stmt = stmt.where(Section.id == viewer.preview_section_id)

    sections: list[Section] = []
    for section, shown in session.execute(stmt):
        # No visibility row means the membership is shown.
        if viewer.mode == "public" and shown is not None and not shown:
            continue
        sections.append(section)
    return sections
