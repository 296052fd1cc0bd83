"""Section registry and membership workflow."""

from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .database import unique_write
from .errors import (
    AlreadyInvited,
    AlreadyMember,
    DuplicateSectionName,
    LastAdmin,
    NoSuchInvitation,
    NoSuchRequest,
    NoSuchSection,
    NotAMember,
    NotAuthorized,
)
from .models import (
    INVITATION_STATUSES,
    MEMBER_STATUSES,
    Section,
    SectionInvitation,
    SectionMember,
    SectionProfileData,
    SectionVisibility,
)
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

JOIN_DECISIONS = {"approve": "approved", "reject": "rejected"}
SECTION_UPDATABLE = {"name", "description", "image_url", "is_public", "requires_approval"}


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("Section name is required")
    return cleaned


def get_section(session: Session, section_id: str) -> Section:
    section = session.get(Section, section_id)
    if not section:
        raise NoSuchSection()
    return section


def get_membership(
    session: Session, section_id: str, user_id: str
) -> SectionMember | None:
    stmt = select(SectionMember).where(
        SectionMember.section_id == section_id, SectionMember.user_id == user_id
    )
    return session.scalars(stmt).first()


def is_section_admin(session: Session, section_id: str, user_id: str | None) -> bool:
    if not user_id:
        return False
    member = get_membership(session, section_id, user_id)
    return bool(member and member.is_admin and member.status == "approved")


def is_approved_member(session: Session, section_id: str, user_id: str | None) -> bool:
    if not user_id:
        return False
    member = get_membership(session, section_id, user_id)
    return bool(member and member.status == "approved")


def require_admin(session: Session, section_id: str, user_id: str | None) -> Section:
    """Return the section when ``user_id`` administers it."""
    section = get_section(session, section_id)
    if not is_section_admin(session, section_id, user_id):
        logger.info("Rejected admin action on section %s by %s", section_id, user_id)
        raise NotAuthorized("Only section admins can do that.")
    return section


def _name_taken(
    session: Session, creator_id: str, name: str, *, exclude_id: str | None = None
) -> bool:
    stmt = select(Section.id).where(
        Section.creator_id == creator_id, Section.name == name
    )
    if exclude_id:
        stmt = stmt.where(Section.id != exclude_id)
    return session.scalars(stmt).first() is not None


def _admin_count(session: Session, section_id: str) -> int:
    stmt = select(func.count()).where(
        SectionMember.section_id == section_id,
        SectionMember.is_admin.is_(True),
        SectionMember.status == "approved",
    )
    return session.scalar(stmt) or 0


def create_section(
    session: Session,
    *,
    creator_id: str,
    name: str,
    description: str | None = None,
    image_url: str | None = None,
    is_public: bool = True,
    requires_approval: bool = False,
) -> Section:
    """Create a section and enrol its creator as an approved admin."""
    cleaned = _clean_name(name)
    if _name_taken(session, creator_id, cleaned):
        raise DuplicateSectionName()

    now = utcnow()
    section = Section(
        creator_id=creator_id,
        name=cleaned,
        description=description,
        image_url=image_url,
        is_public=is_public,
        requires_approval=requires_approval,
        created_at=now,
        updated_at=now,
    )
    with unique_write(session, DuplicateSectionName()):
        session.add(section)

    session.add(
        SectionMember(
            section_id=section.id,
            user_id=creator_id,
            is_admin=True,
            status="approved",
            joined_at=now,
            approved_at=now,
            approved_by=creator_id,
        )
    )
    session.add(SectionVisibility(user_id=creator_id, section_id=section.id))
    session.flush()
    logger.info("Section %s (%r) created by %s", section.id, cleaned, creator_id)
    return section


def update_section(
    session: Session, section_id: str, *, actor_id: str, **changes
) -> Section:
    section = require_admin(session, section_id, actor_id)
    unknown = set(changes) - SECTION_UPDATABLE
    if unknown:
        raise ValueError(f"Cannot update section fields: {', '.join(sorted(unknown))}")
    if "name" in changes:
        changes["name"] = _clean_name(changes["name"])
        if _name_taken(
            session, section.creator_id, changes["name"], exclude_id=section.id
        ):
            raise DuplicateSectionName()
    with unique_write(session, DuplicateSectionName()):
        for key, value in changes.items():
            setattr(section, key, value)
        section.updated_at = utcnow()
    return section


def list_sections(
    session: Session,
    *,
    public_only: bool = True,
    creator_id: str | None = None,
    search_term: str | None = None,
    limit: int | None = None,
) -> Sequence[Section]:
    stmt = select(Section).order_by(Section.name.asc(), Section.created_at.asc())
    if public_only:
        stmt = stmt.where(Section.is_public.is_(True))
    if creator_id:
        stmt = stmt.where(Section.creator_id == creator_id)
    if search_term:
        stmt = stmt.where(Section.name.ilike(f"%{search_term}%"))
    if limit and limit > 0:
        stmt = stmt.limit(limit)
    return session.scalars(stmt).all()


def request_join(session: Session, *, section_id: str, user_id: str) -> SectionMember:
    """Ask to join a section.

    Any existing record blocks the request, including a rejected one; the
    member has to be cleared by leaving before asking again.
    """
    section = get_section(session, section_id)
    if get_membership(session, section_id, user_id):
        raise AlreadyMember()

    now = utcnow()
    status = "pending" if section.requires_approval else "approved"
    member = SectionMember(
        section_id=section_id,
        user_id=user_id,
        is_admin=False,
        status=status,
        joined_at=now,
        approved_at=now if status == "approved" else None,
    )
    with unique_write(session, AlreadyMember()):
        session.add(member)
    if status == "approved":
        _ensure_visibility_row(session, user_id=user_id, section_id=section_id)
    logger.info("User %s joined section %s as %s", user_id, section_id, status)
    return member


def decide_join(
    session: Session,
    *,
    section_id: str,
    target_user_id: str,
    decided_by: str,
    decision: str,
) -> SectionMember:
    """Approve or reject a pending request. Only pending rows can be decided."""
    normalized = (decision or "").strip().lower()
    if normalized not in JOIN_DECISIONS:
        raise ValueError("Decision must be 'approve' or 'reject'")
    require_admin(session, section_id, decided_by)

    member = get_membership(session, section_id, target_user_id)
    if not member or member.status != "pending":
        raise NoSuchRequest()

    member.status = JOIN_DECISIONS[normalized]
    if member.status == "approved":
        member.approved_at = utcnow()
        member.approved_by = decided_by
    session.add(member)
    session.flush()
    if member.status == "approved":
        _ensure_visibility_row(session, user_id=target_user_id, section_id=section_id)
    logger.info(
        "Join request of %s to section %s %s by %s",
        target_user_id,
        section_id,
        member.status,
        decided_by,
    )
    return member


def leave_section(session: Session, *, section_id: str, user_id: str) -> None:
    """Remove the user's membership record, whatever its status."""
    member = get_membership(session, section_id, user_id)
    if not member:
        raise NotAMember()
    if (
        member.is_admin
        and member.status == "approved"
        and _admin_count(session, section_id) <= 1
    ):
        raise LastAdmin(
            "You are the only admin of this section. Promote another member first."
        )

    session.delete(member)
    session.execute(
        delete(SectionProfileData).where(
            SectionProfileData.section_id == section_id,
            SectionProfileData.user_id == user_id,
        )
    )
    session.execute(
        delete(SectionVisibility).where(
            SectionVisibility.section_id == section_id,
            SectionVisibility.user_id == user_id,
        )
    )
    session.flush()
    logger.info("User %s left section %s", user_id, section_id)


def set_admin(
    session: Session,
    *,
    section_id: str,
    target_user_id: str,
    actor_id: str,
    is_admin: bool,
) -> SectionMember:
    """Promote or demote an approved member."""
    require_admin(session, section_id, actor_id)
    member = get_membership(session, section_id, target_user_id)
    if not member or member.status != "approved":
        raise NotAMember("That user is not an approved member of this section.")
    if member.is_admin and not is_admin and _admin_count(session, section_id) <= 1:
        raise LastAdmin()
    member.is_admin = bool(is_admin)
    session.add(member)
    session.flush()
    logger.info(
        "User %s %s in section %s by %s",
        target_user_id,
        "promoted" if is_admin else "demoted",
        section_id,
        actor_id,
    )
    return member


def list_members(
    session: Session, section_id: str, status: str | None = None
) -> Sequence[SectionMember]:
    get_section(session, section_id)
    stmt = (
        select(SectionMember)
        .where(SectionMember.section_id == section_id)
        .order_by(SectionMember.joined_at.asc(), SectionMember.id.asc())
    )
    if status is not None:
        if status not in MEMBER_STATUSES:
            raise ValueError(f"Unknown member status {status!r}")
        stmt = stmt.where(SectionMember.status == status)
    return session.scalars(stmt).all()


def member_count(session: Session, section_id: str, status: str = "approved") -> int:
    stmt = select(func.count()).where(
        SectionMember.section_id == section_id, SectionMember.status == status
    )
    return session.scalar(stmt) or 0


def _ensure_visibility_row(session: Session, *, user_id: str, section_id: str) -> None:
    stmt = select(SectionVisibility.id).where(
        SectionVisibility.user_id == user_id,
        SectionVisibility.section_id == section_id,
    )
    if session.scalars(stmt).first() is None:
        session.add(SectionVisibility(user_id=user_id, section_id=section_id))
        session.flush()


def _pending_invitation(
    session: Session, section_id: str, user_id: str
) -> SectionInvitation | None:
    stmt = select(SectionInvitation).where(
        SectionInvitation.section_id == section_id,
        SectionInvitation.user_id == user_id,
        SectionInvitation.status == "pending",
    )
    return session.scalars(stmt).first()


def invite_member(
    session: Session,
    *,
    section_id: str,
    user_id: str,
    invited_by: str,
    message: str | None = None,
) -> SectionInvitation:
    """Invite a user into a section on behalf of one of its admins."""
    require_admin(session, section_id, invited_by)
    if is_approved_member(session, section_id, user_id):
        raise AlreadyMember("That user is already a member of this section.")
    if _pending_invitation(session, section_id, user_id):
        raise AlreadyInvited()

    invitation = SectionInvitation(
        section_id=section_id,
        user_id=user_id,
        invited_by=invited_by,
        status="pending",
        message=(message or "").strip() or None,
        invited_at=utcnow(),
    )
    with unique_write(session, AlreadyInvited()):
        session.add(invitation)
    logger.info("User %s invited to section %s by %s", user_id, section_id, invited_by)
    return invitation


def respond_invitation(
    session: Session, *, invitation_id: str, user_id: str, accept: bool
) -> SectionInvitation:
    """Accept or decline a pending invitation.

    Accepting approves the membership directly, replacing a pending or
    rejected join request if one exists.
    """
    invitation = session.get(SectionInvitation, invitation_id)
    if (
        invitation is None
        or invitation.user_id != user_id
        or invitation.status != "pending"
    ):
        raise NoSuchInvitation()

    now = utcnow()
    invitation.status = "accepted" if accept else "declined"
    invitation.responded_at = now
    session.add(invitation)

    if accept:
        member = get_membership(session, invitation.section_id, user_id)
        if member is None:
            member = SectionMember(
                section_id=invitation.section_id,
                user_id=user_id,
                is_admin=False,
                joined_at=now,
            )
        member.status = "approved"
        member.approved_at = now
        member.approved_by = invitation.invited_by
        session.add(member)
        session.flush()
        _ensure_visibility_row(
            session, user_id=user_id, section_id=invitation.section_id
        )
    session.flush()
    logger.info(
        "Invitation %s to section %s %s by %s",
        invitation.id,
        invitation.section_id,
        invitation.status,
        user_id,
    )
    return invitation


def list_invitations(
    session: Session,
    *,
    user_id: str | None = None,
    section_id: str | None = None,
    status: str | None = "pending",
) -> Sequence[SectionInvitation]:
    """Invitations for a user or a section, newest first."""
    stmt = select(SectionInvitation).order_by(
        SectionInvitation.invited_at.desc(), SectionInvitation.id.asc()
    )
    if user_id is not None:
        stmt = stmt.where(SectionInvitation.user_id == user_id)
    if section_id is not None:
        stmt = stmt.where(SectionInvitation.section_id == section_id)
    if status is not None:
        if status not in INVITATION_STATUSES:
            raise ValueError(f"Unknown invitation status {status!r}")
        stmt = stmt.where(SectionInvitation.status == status)
    return session.scalars(stmt).all()
