"""Event registry."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .database import unique_write
from .errors import AlreadyCohost, NoSuchCohost, NoSuchEvent, NotAuthorized
from .models import COHOST_ROLES, GUEST_LIST_VISIBILITIES, Event, EventCohost
from .utils import to_naive_utc, utcnow

logger = logging.getLogger("uvicorn.error")

EVENT_UPDATABLE = {
    "title",
    "description",
    "starts_at",
    "ends_at",
    "location",
    "image_url",
    "tags",
    "published",
    "is_private",
    "group_name",
    "max_capacity",
    "guest_list_visibility",
}


def _normalize_capacity(raw: int | str | None) -> int | None:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid maximum capacity") from exc
    if value <= 0:
        raise ValueError("Maximum capacity must be a positive number")
    return value


def _normalize_visibility(raw: str | None) -> str:
    normalized = (raw or "rsvp_only").strip().lower()
    if normalized not in GUEST_LIST_VISIBILITIES:
        raise ValueError(f"Unknown guest list visibility {raw!r}")
    return normalized


def _normalize_group_name(raw: str | None) -> str | None:
    cleaned = (raw or "").strip()
    return cleaned or None


def _normalize_tags(raw: Iterable[str] | None) -> list[str]:
    tags: list[str] = []
    for tag in raw or ():
        cleaned = str(tag).strip()
        if cleaned and cleaned not in tags:
            tags.append(cleaned)
    return tags


def _check_times(starts_at: datetime | None, ends_at: datetime | None) -> None:
    if starts_at is None:
        raise ValueError("starts_at is required")
    if ends_at is not None and ends_at < starts_at:
        raise ValueError("ends_at must be after starts_at")


def get_event(session: Session, event_id: str) -> Event:
    event = session.get(Event, event_id)
    if not event:
        raise NoSuchEvent()
    return event


def get_cohost(
    session: Session, event_id: str, user_id: str | None
) -> EventCohost | None:
    if not user_id:
        return None
    stmt = select(EventCohost).where(
        EventCohost.event_id == event_id, EventCohost.user_id == user_id
    )
    return session.scalars(stmt).first()


def is_event_host(session: Session, event: Event, user_id: str | None) -> bool:
    """Whether ``user_id`` created or co-hosts the event."""
    if not user_id:
        return False
    if event.creator_id == user_id:
        return True
    return get_cohost(session, event.id, user_id) is not None


def create_event(
    session: Session,
    *,
    creator_id: str,
    title: str,
    starts_at: datetime,
    ends_at: datetime | None = None,
    description: str | None = None,
    location: str | None = None,
    image_url: str | None = None,
    tags: Iterable[str] | None = None,
    published: bool = True,
    is_private: bool = False,
    group_name: str | None = None,
    max_capacity: int | None = None,
    guest_list_visibility: str = "rsvp_only",
) -> Event:
    """Create and persist a new event."""
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise ValueError("Event title is required")
    normalized_start = to_naive_utc(starts_at)
    normalized_end = to_naive_utc(ends_at)
    _check_times(normalized_start, normalized_end)

    now = utcnow()
    event = Event(
        creator_id=creator_id,
        title=cleaned_title,
        description=description,
        starts_at=normalized_start,
        ends_at=normalized_end,
        location=location,
        image_url=image_url,
        tags=_normalize_tags(tags),
        published=published,
        is_private=is_private,
        group_name=_normalize_group_name(group_name),
        max_capacity=_normalize_capacity(max_capacity),
        guest_list_visibility=_normalize_visibility(guest_list_visibility),
        created_at=now,
        updated_at=now,
    )
    session.add(event)
    session.flush()
    logger.info("Event %s created by %s", event.id, creator_id)
    return event


def update_event(session: Session, event_id: str, *, actor_id: str, **changes) -> Event:
    """Update an event; only its creator and co-hosts may change it.

    Lowering ``max_capacity`` below the current going count is allowed and
    leaves existing RSVPs in place.
    """
    event = get_event(session, event_id)
    if not is_event_host(session, event, actor_id):
        raise NotAuthorized("Only the event hosts can edit this event.")
    unknown = set(changes) - EVENT_UPDATABLE
    if unknown:
        raise ValueError(f"Cannot update event fields: {', '.join(sorted(unknown))}")

    if "title" in changes:
        changes["title"] = (changes["title"] or "").strip()
        if not changes["title"]:
            raise ValueError("Event title is required")
    if "starts_at" in changes:
        changes["starts_at"] = to_naive_utc(changes["starts_at"])
    if "ends_at" in changes:
        changes["ends_at"] = to_naive_utc(changes["ends_at"])
    _check_times(
        changes.get("starts_at", event.starts_at),
        changes.get("ends_at", event.ends_at),
    )
    if "max_capacity" in changes:
        changes["max_capacity"] = _normalize_capacity(changes["max_capacity"])
    if "guest_list_visibility" in changes:
        changes["guest_list_visibility"] = _normalize_visibility(
            changes["guest_list_visibility"]
        )
    if "group_name" in changes:
        changes["group_name"] = _normalize_group_name(changes["group_name"])
    if "tags" in changes:
        changes["tags"] = _normalize_tags(changes["tags"])

    for key, value in changes.items():
        setattr(event, key, value)
    event.updated_at = utcnow()
    session.add(event)
    session.flush()
    return event


def list_group_events(
    session: Session,
    creator_id: str,
    group_name: str,
    *,
    published_only: bool = True,
    include_private: bool = False,
    starts_after: datetime | None = None,
) -> Sequence[Event]:
    """Events a creator filed under ``group_name``, soonest first."""
    stmt = (
        select(Event)
        .where(
            Event.creator_id == creator_id,
            Event.group_name == _normalize_group_name(group_name),
        )
        .order_by(Event.starts_at.asc(), Event.id.asc())
    )
    if published_only:
        stmt = stmt.where(Event.published.is_(True))
    if not include_private:
        stmt = stmt.where(Event.is_private.is_(False))
    if starts_after is not None:
        stmt = stmt.where(Event.starts_at >= starts_after)
    return session.scalars(stmt).all()


def add_cohost(
    session: Session,
    *,
    event_id: str,
    user_id: str,
    added_by: str,
    role: str = "cohost",
) -> EventCohost:
    """Share the event's host privileges with another user.

    Only the creator manages co-hosts.
    """
    event = get_event(session, event_id)
    if event.creator_id != added_by:
        raise NotAuthorized("Only the event creator can manage co-hosts.")
    normalized = (role or "cohost").strip().lower()
    if normalized not in COHOST_ROLES:
        raise ValueError(f"Unknown co-host role {role!r}")
    if user_id == event.creator_id or get_cohost(session, event_id, user_id):
        raise AlreadyCohost()

    cohost = EventCohost(
        event_id=event_id,
        user_id=user_id,
        added_by=added_by,
        role=normalized,
        created_at=utcnow(),
    )
    with unique_write(session, AlreadyCohost()):
        session.add(cohost)
    logger.info("User %s added as %s of event %s", user_id, normalized, event_id)
    return cohost


def remove_cohost(
    session: Session, *, event_id: str, user_id: str, actor_id: str
) -> None:
    """Remove a co-host; the creator may remove anyone, a co-host only themself."""
    event = get_event(session, event_id)
    if actor_id not in (event.creator_id, user_id):
        raise NotAuthorized("Only the event creator can manage co-hosts.")
    cohost = get_cohost(session, event_id, user_id)
    if cohost is None:
        raise NoSuchCohost()
    session.delete(cohost)
    session.flush()
    logger.info("User %s removed from co-hosts of event %s", user_id, event_id)


def list_cohosts(session: Session, event_id: str) -> Sequence[EventCohost]:
    get_event(session, event_id)
    stmt = (
        select(EventCohost)
        .where(EventCohost.event_id == event_id)
        .order_by(EventCohost.created_at.asc(), EventCohost.id.asc())
    )
    return session.scalars(stmt).all()
