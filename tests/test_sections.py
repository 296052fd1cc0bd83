from __future__ import annotations

import pytest
from sqlalchemy import select

from rallypoint import sections
from rallypoint.errors import (
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
from rallypoint.database import unique_write
from rallypoint.events import create_event
from rallypoint.models import Event, SectionInvitation, SectionMember, SectionVisibility
from rallypoint.profiles import define_field, get_profile_data, save_profile_data
from rallypoint.sections import (
    create_section,
    decide_join,
    get_membership,
    invite_member,
    leave_section,
    list_invitations,
    list_members,
    list_sections,
    member_count,
    request_join,
    respond_invitation,
    set_admin,
    update_section,
)
from rallypoint.utils import utcnow

ADMIN = "user-admin"
BOB = "user-bob"
CAROL = "user-carol"


def _section(session, *, name="Tennis", requires_approval=False, is_public=True):
    section = create_section(
        session,
        creator_id=ADMIN,
        name=name,
        requires_approval=requires_approval,
        is_public=is_public,
    )
    session.commit()
    return section


def test_create_section_enrols_creator_as_admin(session):
    section = _section(session)

    member = get_membership(session, section.id, ADMIN)
    assert member.is_admin is True
    assert member.status == "approved"
    assert member.approved_at is not None
    assert member_count(session, section.id) == 1
    visibility = session.scalars(
        select(SectionVisibility).where(SectionVisibility.section_id == section.id)
    ).one()
    assert visibility.user_id == ADMIN
    assert visibility.show_membership is True


def test_section_names_unique_per_creator(session):
    _section(session, name="Book Club")

    with pytest.raises(DuplicateSectionName):
        create_section(session, creator_id=ADMIN, name="  Book Club ")

    other = create_section(session, creator_id=BOB, name="Book Club")
    assert other.creator_id == BOB


def test_create_section_requires_name(session):
    with pytest.raises(ValueError):
        create_section(session, creator_id=ADMIN, name="   ")


def test_join_open_section_is_approved_immediately(session):
    section = _section(session)

    member = request_join(session, section_id=section.id, user_id=BOB)

    assert member.status == "approved"
    assert member.is_admin is False
    assert member.approved_at is not None
    assert member_count(session, section.id) == 2


def test_join_approval_flow(session):
    section = _section(session, requires_approval=True)

    pending = request_join(session, section_id=section.id, user_id=BOB)
    assert pending.status == "pending"
    assert member_count(session, section.id) == 1
    assert member_count(session, section.id, status="pending") == 1

    with pytest.raises(NotAuthorized):
        decide_join(
            session,
            section_id=section.id,
            target_user_id=BOB,
            decided_by=CAROL,
            decision="approve",
        )

    approved = decide_join(
        session,
        section_id=section.id,
        target_user_id=BOB,
        decided_by=ADMIN,
        decision="approve",
    )
    assert approved.status == "approved"
    assert approved.approved_by == ADMIN
    assert member_count(session, section.id) == 2


def test_pending_member_cannot_decide_requests(session):
    section = _section(session, requires_approval=True)
    request_join(session, section_id=section.id, user_id=BOB)
    request_join(session, section_id=section.id, user_id=CAROL)

    with pytest.raises(NotAuthorized):
        decide_join(
            session,
            section_id=section.id,
            target_user_id=CAROL,
            decided_by=BOB,
            decision="approve",
        )


def test_only_pending_requests_can_be_decided(session):
    section = _section(session, requires_approval=True)
    request_join(session, section_id=section.id, user_id=BOB)
    decide_join(
        session,
        section_id=section.id,
        target_user_id=BOB,
        decided_by=ADMIN,
        decision="reject",
    )

    with pytest.raises(NoSuchRequest):
        decide_join(
            session,
            section_id=section.id,
            target_user_id=BOB,
            decided_by=ADMIN,
            decision="approve",
        )
    with pytest.raises(NoSuchRequest):
        decide_join(
            session,
            section_id=section.id,
            target_user_id=CAROL,
            decided_by=ADMIN,
            decision="approve",
        )


def test_decide_join_rejects_unknown_decision(session):
    section = _section(session, requires_approval=True)
    request_join(session, section_id=section.id, user_id=BOB)

    with pytest.raises(ValueError):
        decide_join(
            session,
            section_id=section.id,
            target_user_id=BOB,
            decided_by=ADMIN,
            decision="maybe",
        )


def test_rejected_member_must_leave_before_rejoining(session):
    section = _section(session, requires_approval=True)
    request_join(session, section_id=section.id, user_id=BOB)
    decide_join(
        session,
        section_id=section.id,
        target_user_id=BOB,
        decided_by=ADMIN,
        decision="reject",
    )

    with pytest.raises(AlreadyMember):
        request_join(session, section_id=section.id, user_id=BOB)

    leave_section(session, section_id=section.id, user_id=BOB)
    again = request_join(session, section_id=section.id, user_id=BOB)
    assert again.status == "pending"


def test_repeated_join_request_is_rejected(session):
    section = _section(session)
    request_join(session, section_id=section.id, user_id=BOB)

    with pytest.raises(AlreadyMember):
        request_join(session, section_id=section.id, user_id=BOB)


def test_concurrent_join_request_hits_unique_constraint(session, monkeypatch):
    section = _section(session)
    request_join(session, section_id=section.id, user_id=BOB)
    session.commit()

    # Simulate a second request that passed the existence check before the
    # first one was written.
    monkeypatch.setattr(sections, "get_membership", lambda *args, **kwargs: None)
    with pytest.raises(AlreadyMember):
        request_join(session, section_id=section.id, user_id=BOB)

    rows = session.scalars(
        select(SectionMember).where(
            SectionMember.section_id == section.id, SectionMember.user_id == BOB
        )
    ).all()
    assert len(rows) == 1


def test_join_unknown_section(session):
    with pytest.raises(NoSuchSection):
        request_join(session, section_id="missing", user_id=BOB)


def test_leave_removes_membership_and_answers(session):
    section = _section(session)
    field = define_field(
        session,
        section_id=section.id,
        actor_id=ADMIN,
        field_label="Skill Level",
        field_type="text",
    )
    request_join(session, section_id=section.id, user_id=BOB)
    save_profile_data(
        session, user_id=BOB, section_id=section.id, answers={field.id: "advanced"}
    )

    leave_section(session, section_id=section.id, user_id=BOB)

    assert get_membership(session, section.id, BOB) is None
    assert get_profile_data(session, user_id=BOB, section_id=section.id) == {}
    assert member_count(session, section.id) == 1


def test_leave_without_membership(session):
    section = _section(session)

    with pytest.raises(NotAMember):
        leave_section(session, section_id=section.id, user_id=BOB)


def test_last_admin_cannot_leave_or_be_demoted(session):
    section = _section(session)

    with pytest.raises(LastAdmin):
        leave_section(session, section_id=section.id, user_id=ADMIN)
    with pytest.raises(LastAdmin):
        set_admin(
            session,
            section_id=section.id,
            target_user_id=ADMIN,
            actor_id=ADMIN,
            is_admin=False,
        )


def test_promoted_admin_allows_creator_to_leave(session):
    section = _section(session)
    request_join(session, section_id=section.id, user_id=BOB)

    promoted = set_admin(
        session,
        section_id=section.id,
        target_user_id=BOB,
        actor_id=ADMIN,
        is_admin=True,
    )
    assert promoted.is_admin is True

    leave_section(session, section_id=section.id, user_id=ADMIN)
    assert [m.user_id for m in list_members(session, section.id)] == [BOB]


def test_set_admin_requires_approved_target(session):
    section = _section(session, requires_approval=True)
    request_join(session, section_id=section.id, user_id=BOB)

    with pytest.raises(NotAMember):
        set_admin(
            session,
            section_id=section.id,
            target_user_id=BOB,
            actor_id=ADMIN,
            is_admin=True,
        )


def test_update_section_admin_only(session):
    section = _section(session)
    request_join(session, section_id=section.id, user_id=BOB)

    with pytest.raises(NotAuthorized):
        update_section(session, section.id, actor_id=BOB, description="hijack")

    updated = update_section(
        session, section.id, actor_id=ADMIN, description="Weekly doubles"
    )
    assert updated.description == "Weekly doubles"

    with pytest.raises(ValueError):
        update_section(session, section.id, actor_id=ADMIN, creator_id=BOB)


def test_list_members_filters_by_status(session):
    section = _section(session, requires_approval=True)
    request_join(session, section_id=section.id, user_id=BOB)
    request_join(session, section_id=section.id, user_id=CAROL)
    decide_join(
        session,
        section_id=section.id,
        target_user_id=CAROL,
        decided_by=ADMIN,
        decision="approve",
    )

    assert [m.user_id for m in list_members(session, section.id, "pending")] == [BOB]
    assert {m.user_id for m in list_members(session, section.id, "approved")} == {
        ADMIN,
        CAROL,
    }
    with pytest.raises(ValueError):
        list_members(session, section.id, "banned")


def test_list_sections_public_and_search(session):
    _section(session, name="Tennis Club")
    _section(session, name="Secret Society", is_public=False)
    _section(session, name="Chess Club")

    public = [s.name for s in list_sections(session)]
    assert public == ["Chess Club", "Tennis Club"]

    everything = [s.name for s in list_sections(session, public_only=False)]
    assert "Secret Society" in everything

    assert [s.name for s in list_sections(session, search_term="tennis")] == [
        "Tennis Club"
    ]


def test_unique_conflict_keeps_earlier_uncommitted_work(session):
    event = create_event(
        session, creator_id=CAROL, title="Open Day", starts_at=utcnow()
    )
    section = create_section(session, creator_id=ADMIN, name="Chess")
    session.add(
        SectionMember(
            section_id=section.id, user_id=BOB, status="approved", joined_at=utcnow()
        )
    )
    session.flush()

    with pytest.raises(AlreadyMember):
        with unique_write(session, AlreadyMember()):
            session.add(
                SectionMember(
                    section_id=section.id,
                    user_id=BOB,
                    status="approved",
                    joined_at=utcnow(),
                )
            )

    assert session.get(Event, event.id) is not None
    assert session.scalars(select(Event)).all() == [event]
    assert member_count(session, section.id) == 2


def test_invitation_accept_skips_approval_queue(session):
    section = _section(session, requires_approval=True)

    invitation = invite_member(
        session,
        section_id=section.id,
        user_id=BOB,
        invited_by=ADMIN,
        message="  Join us on Thursdays ",
    )
    assert invitation.status == "pending"
    assert invitation.message == "Join us on Thursdays"
    assert [i.id for i in list_invitations(session, user_id=BOB)] == [invitation.id]

    accepted = respond_invitation(
        session, invitation_id=invitation.id, user_id=BOB, accept=True
    )

    assert accepted.status == "accepted"
    assert accepted.responded_at is not None
    member = get_membership(session, section.id, BOB)
    assert member.status == "approved"
    assert member.approved_by == ADMIN
    assert session.scalars(
        select(SectionVisibility).where(SectionVisibility.user_id == BOB)
    ).first() is not None
    assert list_invitations(session, user_id=BOB) == []


def test_invitation_replaces_pending_join_request(session):
    section = _section(session, requires_approval=True)
    request_join(session, section_id=section.id, user_id=BOB)
    invitation = invite_member(
        session, section_id=section.id, user_id=BOB, invited_by=ADMIN
    )

    respond_invitation(session, invitation_id=invitation.id, user_id=BOB, accept=True)

    rows = session.scalars(
        select(SectionMember).where(
            SectionMember.section_id == section.id, SectionMember.user_id == BOB
        )
    ).all()
    assert [row.status for row in rows] == ["approved"]


def test_declined_invitation_does_not_join(session):
    section = _section(session)
    invitation = invite_member(
        session, section_id=section.id, user_id=BOB, invited_by=ADMIN
    )

    declined = respond_invitation(
        session, invitation_id=invitation.id, user_id=BOB, accept=False
    )

    assert declined.status == "declined"
    assert get_membership(session, section.id, BOB) is None
    with pytest.raises(NoSuchInvitation):
        respond_invitation(
            session, invitation_id=invitation.id, user_id=BOB, accept=True
        )

    # A fresh invitation is allowed once the earlier one was answered.
    again = invite_member(session, section_id=section.id, user_id=BOB, invited_by=ADMIN)
    assert again.id != invitation.id


def test_invite_member_rules(session):
    section = _section(session)
    request_join(session, section_id=section.id, user_id=CAROL)

    with pytest.raises(NotAuthorized):
        invite_member(session, section_id=section.id, user_id=BOB, invited_by=CAROL)
    with pytest.raises(AlreadyMember):
        invite_member(session, section_id=section.id, user_id=CAROL, invited_by=ADMIN)

    invitation = invite_member(
        session, section_id=section.id, user_id=BOB, invited_by=ADMIN
    )
    with pytest.raises(AlreadyInvited):
        invite_member(session, section_id=section.id, user_id=BOB, invited_by=ADMIN)
    with pytest.raises(NoSuchInvitation):
        respond_invitation(
            session, invitation_id=invitation.id, user_id=CAROL, accept=True
        )


def test_concurrent_invitation_hits_pending_index(session, monkeypatch):
    section = _section(session)
    invite_member(session, section_id=section.id, user_id=BOB, invited_by=ADMIN)
    session.commit()

    monkeypatch.setattr(sections, "_pending_invitation", lambda *args, **kwargs: None)
    with pytest.raises(AlreadyInvited):
        invite_member(session, section_id=section.id, user_id=BOB, invited_by=ADMIN)

    rows = session.scalars(
        select(SectionInvitation).where(SectionInvitation.user_id == BOB)
    ).all()
    assert len(rows) == 1
