from __future__ import annotations

import pytest
from sqlalchemy import func, select

from rallypoint.collaborators import InMemoryProfileStore, Profile
from rallypoint.errors import (
    NoSuchField,
    NotAMember,
    NotAuthorized,
    ProfileValidationError,
)
from rallypoint.models import SectionProfileData
from rallypoint.profiles import (
    completion_percent,
    deactivate_field,
    define_field,
    get_profile_data,
    list_fields,
    member_directory,
    reorder_fields,
    save_profile_data,
    update_field,
)
from rallypoint.sections import create_section, request_join

ADMIN = "user-admin"
BOB = "user-bob"
CAROL = "user-carol"


@pytest.fixture()
def section(session):
    section = create_section(session, creator_id=ADMIN, name="Tennis")
    request_join(session, section_id=section.id, user_id=BOB)
    session.commit()
    return section


def _define(session, section, label, field_type="text", **kwargs):
    return define_field(
        session,
        section_id=section.id,
        actor_id=ADMIN,
        field_label=label,
        field_type=field_type,
        **kwargs,
    )


def test_define_field_assigns_name_and_order(session, section):
    first = _define(session, section, "Skill Level", "select", field_options=["beginner", "pro"])
    second = _define(session, section, "Website", "url")

    assert first.field_name == "skill_level"
    assert first.field_options == [
        {"value": "beginner", "label": "beginner"},
        {"value": "pro", "label": "pro"},
    ]
    assert (first.display_order, second.display_order) == (0, 1)
    assert [f.id for f in list_fields(session, section.id)] == [first.id, second.id]


def test_define_field_admin_only(session, section):
    with pytest.raises(NotAuthorized):
        define_field(
            session,
            section_id=section.id,
            actor_id=BOB,
            field_label="Nickname",
            field_type="text",
        )


def test_define_field_rejects_invalid_definitions(session, section):
    with pytest.raises(ValueError):
        _define(session, section, "Level", "select")
    with pytest.raises(ValueError):
        _define(session, section, "Colour", "color")
    with pytest.raises(ValueError):
        _define(session, section, "Code", min_length=5, max_length=2)
    with pytest.raises(ValueError):
        _define(session, section, "Code", validation_pattern="([")

    _define(session, section, "Nickname")
    with pytest.raises(ValueError):
        _define(session, section, "nickname")


def test_update_and_deactivate_field(session, section):
    field = _define(session, section, "Nickname")

    updated = update_field(
        session,
        section_id=section.id,
        field_id=field.id,
        actor_id=ADMIN,
        help_text="What should we call you?",
        max_length=20,
    )
    assert updated.help_text == "What should we call you?"
    assert updated.max_length == 20

    with pytest.raises(ValueError):
        update_field(
            session,
            section_id=section.id,
            field_id=field.id,
            actor_id=ADMIN,
            field_type="number",
        )

    deactivate_field(session, section_id=section.id, field_id=field.id, actor_id=ADMIN)
    assert list_fields(session, section.id) == []
    assert [f.id for f in list_fields(session, section.id, include_inactive=True)] == [
        field.id
    ]


def test_reorder_fields(session, section):
    a = _define(session, section, "A")
    b = _define(session, section, "B")
    c = _define(session, section, "C")

    ordered = reorder_fields(
        session, section_id=section.id, actor_id=ADMIN, field_ids=[c.id, a.id]
    )

    assert [f.id for f in ordered] == [c.id, a.id, b.id]
    assert [f.id for f in list_fields(session, section.id)] == [c.id, a.id, b.id]
    with pytest.raises(NoSuchField):
        reorder_fields(
            session, section_id=section.id, actor_id=ADMIN, field_ids=["missing"]
        )


def test_save_profile_data_stores_answers(session, section):
    level = _define(
        session, section, "Skill Level", "select", field_options=["beginner", "pro"]
    )
    days = _define(
        session, section, "Days", "multiselect", field_options=["mon", "wed", "fri"]
    )

    answers = save_profile_data(
        session,
        user_id=BOB,
        section_id=section.id,
        answers={level.id: "pro", days.id: ["mon", "fri"]},
    )

    assert answers == {level.id: "pro", days.id: "mon,fri"}
    assert get_profile_data(session, user_id=BOB, section_id=section.id) == answers

    answers = save_profile_data(
        session, user_id=BOB, section_id=section.id, answers={level.id: "beginner"}
    )
    assert answers[level.id] == "beginner"
    rows = session.scalar(
        select(func.count()).where(SectionProfileData.user_id == BOB)
    )
    assert rows == 2


def test_answers_are_trimmed_and_blank_answers_clear_the_row(session, section):
    nickname = _define(session, section, "Nickname")
    city = _define(session, section, "City")

    answers = save_profile_data(
        session,
        user_id=BOB,
        section_id=section.id,
        answers={nickname.id: "  Bobby ", city.id: "Leeds"},
    )
    assert answers == {nickname.id: "Bobby", city.id: "Leeds"}

    answers = save_profile_data(
        session, user_id=BOB, section_id=section.id, answers={city.id: "   "}
    )
    assert answers == {nickname.id: "Bobby"}
    rows = session.scalar(
        select(func.count()).where(SectionProfileData.user_id == BOB)
    )
    assert rows == 1


def test_non_latin_label_gets_positional_field_name(session, section):
    _define(session, section, "Nickname")
    first = _define(session, section, "レベル")
    second = _define(session, section, "ウェブサイト")

    assert first.field_name == "field_2"
    assert second.field_name == "field_3"
    with pytest.raises(ValueError):
        _define(session, section, "Level", field_name="!!!")


def test_invalid_batch_writes_nothing(session, section):
    nickname = _define(session, section, "Nickname")
    website = _define(session, section, "Website", "url")

    with pytest.raises(ProfileValidationError) as excinfo:
        save_profile_data(
            session,
            user_id=BOB,
            section_id=section.id,
            answers={nickname.id: "Bobby", website.id: "not a url"},
        )

    assert excinfo.value.kind == "InvalidUrl"
    assert excinfo.value.field_id == website.id
    assert excinfo.value.as_dict()["field_id"] == website.id
    assert get_profile_data(session, user_id=BOB, section_id=section.id) == {}


def test_required_field_cannot_be_cleared(session, section):
    level = _define(session, section, "Skill Level", is_required=True)

    with pytest.raises(ProfileValidationError) as excinfo:
        save_profile_data(
            session, user_id=BOB, section_id=section.id, answers={level.id: ""}
        )
    assert excinfo.value.kind == "RequiredFieldMissing"


def test_save_profile_data_requires_approved_member(session, section):
    field = _define(session, section, "Nickname")

    with pytest.raises(NotAMember):
        save_profile_data(
            session, user_id=CAROL, section_id=section.id, answers={field.id: "Caz"}
        )


def test_save_profile_data_rejects_unknown_and_inactive_fields(session, section):
    field = _define(session, section, "Nickname")
    deactivate_field(session, section_id=section.id, field_id=field.id, actor_id=ADMIN)

    with pytest.raises(NoSuchField):
        save_profile_data(
            session, user_id=BOB, section_id=section.id, answers={"nope": "x"}
        )
    with pytest.raises(NoSuchField):
        save_profile_data(
            session, user_id=BOB, section_id=section.id, answers={field.id: "x"}
        )


def test_completion_percent(session, section):
    assert completion_percent(session, user_id=BOB, section_id=section.id) == 100

    level = _define(session, section, "Skill Level", is_required=True)
    _define(session, section, "Bio", "textarea")
    club = _define(session, section, "Home Club", is_required=True)
    third = _define(session, section, "Racket", is_required=True)

    assert completion_percent(session, user_id=BOB, section_id=section.id) == 0
    save_profile_data(
        session, user_id=BOB, section_id=section.id, answers={level.id: "pro"}
    )
    assert completion_percent(session, user_id=BOB, section_id=section.id) == 33
    save_profile_data(
        session,
        user_id=BOB,
        section_id=section.id,
        answers={club.id: "Riverside", third.id: "Wilson"},
    )
    assert completion_percent(session, user_id=BOB, section_id=section.id) == 100


def test_member_directory_shows_answers_to_members_only(session, section):
    level = _define(session, section, "Skill Level")
    save_profile_data(
        session, user_id=BOB, section_id=section.id, answers={level.id: "pro"}
    )
    profiles = InMemoryProfileStore(
        {
            BOB: Profile(full_name="Bob Builder"),
            ADMIN: Profile(full_name="Ada Admin", is_private=True),
        }
    )

    as_member = member_directory(
        session, section.id, viewer_id=ADMIN, profiles=profiles
    )
    by_user = {entry["user_id"]: entry for entry in as_member}
    assert by_user[BOB]["section_data"] == {"skill_level": "pro"}
    assert by_user[BOB]["full_name"] == "Bob Builder"
    assert by_user[ADMIN]["full_name"] is None
    assert by_user[ADMIN]["is_admin"] is True

    as_outsider = member_directory(session, section.id, viewer_id=CAROL)
    assert all(entry["section_data"] == {} for entry in as_outsider)


def test_member_directory_of_private_section_needs_membership(session):
    hidden = create_section(session, creator_id=ADMIN, name="Secret", is_public=False)

    with pytest.raises(NotAMember):
        member_directory(session, hidden.id, viewer_id=CAROL)
    assert len(member_directory(session, hidden.id, viewer_id=ADMIN)) == 1
