from __future__ import annotations

import pytest
from sqlalchemy import func, select

from rallypoint.models import Event, EventRSVP, Section, SectionMember
from rallypoint.seed import seed_fake_data


def test_seed_fake_data_populates_tables(session):
    stats = seed_fake_data(
        section_count=2,
        max_members_per_section=3,
        event_count=3,
        max_rsvps_per_event=4,
    )

    assert stats["sections"] == 2
    assert stats["events"] == 3
    assert session.scalar(select(func.count()).select_from(Section)) == 2
    assert session.scalar(select(func.count()).select_from(Event)) == 3
    assert session.scalar(select(func.count()).select_from(EventRSVP)) == stats["rsvps"]
    # Creators are enrolled on top of the seeded members.
    assert (
        session.scalar(select(func.count()).select_from(SectionMember))
        == stats["members"] + 2
    )


def test_seed_fake_data_rejects_negative_counts():
    with pytest.raises(ValueError):
        seed_fake_data(section_count=-1)
