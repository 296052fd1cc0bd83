"""Development helpers for populating fake sections, members and events."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .database import get_session
from .errors import CapacityExceeded, DuplicateSectionName
from .events import create_event
from .models import Event, Section
from .profiles import define_field, list_fields, save_profile_data
from .rsvps import set_rsvp
from .sections import create_section, decide_join, request_join
from .subscriptions import is_subscribed, subscribe
from .utils import utcnow

_section_suffixes = [
    "Tennis Club",
    "Book Circle",
    "Running Crew",
    "Board Game Night",
    "Climbing Collective",
    "Photo Walk",
    "Chess Society",
]
_event_types = [
    "Mixer",
    "Hangout",
    "Workshop",
    "Tournament",
    "Field Trip",
    "Meet & Greet",
    "Dinner",
    "Discussion",
]
_group_names = ["Weekly Meetups", "Workshops", "Socials", None, None]
_skill_levels = ["beginner", "intermediate", "advanced"]
_rsvp_statuses = ["going", "going", "going", "maybe", "maybe", "not_going"]


def seed_fake_data(
    *,
    section_count: int = 4,
    max_members_per_section: int = 8,
    event_count: int = 6,
    max_rsvps_per_event: int = 10,
) -> dict[str, int]:
    """Populate the database with synthetic sections, members and events."""
    if section_count < 0:
        raise ValueError("section_count must be >= 0")
    if max_members_per_section < 0:
        raise ValueError("max_members_per_section must be >= 0")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if max_rsvps_per_event < 0:
        raise ValueError("max_rsvps_per_event must be >= 0")

    fake = Faker()
    pool_size = max(max_members_per_section, max_rsvps_per_event, 1) * 2
    users = [fake.uuid4() for _ in range(pool_size)]
    stats = {"sections": 0, "members": 0, "events": 0, "rsvps": 0}

    with get_session() as session:
        for _ in range(section_count):
            section = _create_section(session, fake, creator_id=random.choice(users))
            stats["sections"] += 1
            stats["members"] += _add_members(
                session, fake, section, users, max_members_per_section
            )

        for _ in range(event_count):
            event = _create_event(session, fake, creator_id=random.choice(users))
            stats["events"] += 1
            stats["rsvps"] += _create_rsvps(session, event, users, max_rsvps_per_event)
            if event.group_name and random.random() < 0.5:
                subscriber = random.choice(users)
                if subscriber != event.creator_id:
                    _subscribe_quietly(session, subscriber, event)

    return stats


def _create_section(session: Session, fake: Faker, *, creator_id: str) -> Section:
    for _ in range(20):
        name = f"{fake.city()} {random.choice(_section_suffixes)}"
        try:
            section = create_section(
                session,
                creator_id=creator_id,
                name=name,
                description=fake.paragraph(nb_sentences=2),
                is_public=random.random() < 0.8,
                requires_approval=random.random() < 0.4,
            )
        except DuplicateSectionName:
            continue
        define_field(
            session,
            section_id=section.id,
            actor_id=creator_id,
            field_label="Skill Level",
            field_type="select",
            field_options=_skill_levels,
            is_required=True,
        )
        define_field(
            session,
            section_id=section.id,
            actor_id=creator_id,
            field_label="Website",
            field_type="url",
            placeholder="https://",
        )
        return section
    raise RuntimeError("Failed to create a unique section name")


def _add_members(
    session: Session, fake: Faker, section: Section, users: list[str], max_members: int
) -> int:
    if max_members <= 0:
        return 0
    field_ids = {f.field_name: f.id for f in list_fields(session, section.id)}
    candidates = [u for u in users if u != section.creator_id]
    total = min(len(candidates), random.randint(0, max_members))
    joined = random.sample(candidates, k=total)
    for user_id in joined:
        member = request_join(session, section_id=section.id, user_id=user_id)
        if member.status == "pending" and random.random() < 0.7:
            member = decide_join(
                session,
                section_id=section.id,
                target_user_id=user_id,
                decided_by=section.creator_id,
                decision=random.choice(["approve", "approve", "reject"]),
            )
        if member.status == "approved" and random.random() < 0.6:
            save_profile_data(
                session,
                user_id=user_id,
                section_id=section.id,
                answers={
                    field_ids["skill_level"]: random.choice(_skill_levels),
                    field_ids["website"]: fake.url() if random.random() < 0.5 else "",
                },
            )
    return len(joined)


def _create_event(session: Session, fake: Faker, *, creator_id: str) -> Event:
    starts_at = _random_start_time()
    return create_event(
        session,
        creator_id=creator_id,
        title=f"{fake.city()} {random.choice(_event_types)}",
        description="\n\n".join(fake.paragraphs(nb=2)),
        starts_at=starts_at,
        ends_at=_maybe_end_time(starts_at),
        location=fake.address().replace("\n", ", "),
        tags=fake.words(nb=random.randint(0, 3)),
        group_name=random.choice(_group_names),
        max_capacity=random.choice([None, None, 5, 10, 25]),
        guest_list_visibility=random.choice(["public", "rsvp_only", "hidden"]),
        is_private=random.random() < 0.1,
    )


def _random_start_time() -> datetime:
    day_offset = random.randint(-7, 30)
    minute_offset = random.randint(0, 23 * 60)
    return utcnow() + timedelta(days=day_offset, minutes=minute_offset)


def _maybe_end_time(starts_at: datetime) -> datetime | None:
    if random.random() < 0.3:
        return None
    return starts_at + timedelta(hours=random.randint(1, 6))


def _create_rsvps(
    session: Session, event: Event, users: list[str], max_rsvps: int
) -> int:
    if max_rsvps <= 0:
        return 0
    total = 0
    picked = random.sample(users, k=min(len(users), random.randint(0, max_rsvps)))
    for user_id in picked:
        status = random.choice(_rsvp_statuses)
        try:
            set_rsvp(session, event_id=event.id, user_id=user_id, status=status)
        except CapacityExceeded:
            set_rsvp(session, event_id=event.id, user_id=user_id, status="maybe")
        total += 1
    return total


def _subscribe_quietly(session: Session, subscriber_id: str, event: Event) -> None:
    if is_subscribed(
        session,
        subscriber_id=subscriber_id,
        creator_id=event.creator_id,
        group_name=event.group_name,
    ):
        return
    subscribe(
        session,
        subscriber_id=subscriber_id,
        creator_id=event.creator_id,
        group_name=event.group_name,
    )
