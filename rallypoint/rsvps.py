"""RSVP ledger and capacity accounting.

Counts are always aggregated from ``event_rsvps``; nothing caches them.

Capacity is checked by reading the going count and then writing. Two writers
racing for the last slot can both pass the check, so the cap is best-effort.
With ``strict_capacity`` enabled the event row is read ``FOR UPDATE`` before
counting, which serializes writers on databases with row locks (PostgreSQL,
MySQL); SQLite ignores the lock hint.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import config
from .collaborators import ProfileStore
from .errors import CapacityExceeded, NoSuchEvent, NoSuchRSVP, NotAuthorized
from .events import get_event, is_event_host
from .models import RSVP_STATUSES, Event, EventRSVP
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

ACCESS_STATUSES = {"going", "maybe"}


def _normalize_status(status: str | None) -> str:
    normalized = (status or "").strip().lower()
    if normalized not in RSVP_STATUSES:
        raise ValueError(f"Unknown RSVP status {status!r}")
    return normalized


def get_rsvp(session: Session, event_id: str, user_id: str | None) -> EventRSVP | None:
    if not user_id:
        return None
    stmt = select(EventRSVP).where(
        EventRSVP.event_id == event_id, EventRSVP.user_id == user_id
    )
    return session.scalars(stmt).first()


def going_count(session: Session, event_id: str) -> int:
    stmt = select(func.count()).where(
        EventRSVP.event_id == event_id, EventRSVP.status == "going"
    )
    return session.scalar(stmt) or 0


def rsvp_counts(session: Session, event_id: str) -> dict[str, int]:
    stmt = (
        select(EventRSVP.status, func.count())
        .where(EventRSVP.event_id == event_id)
        .group_by(EventRSVP.status)
    )
    counts = {status: 0 for status in RSVP_STATUSES}
    for status, count in session.execute(stmt):
        counts[status] = count
    return counts


def spots_remaining(session: Session, event: Event) -> int | None:
    if event.max_capacity is None:
        return None
    return max(0, event.max_capacity - going_count(session, event.id))


def _load_event_for_rsvp(session: Session, event_id: str) -> Event:
    if not config.settings.strict_capacity:
        return get_event(session, event_id)
    stmt = select(Event).where(Event.id == event_id).with_for_update()
    event = session.scalars(stmt).first()
    if not event:
        raise NoSuchEvent()
    return event


def _enforce_capacity(
    session: Session, event: Event, *, new_status: str, current: EventRSVP | None
) -> None:
    if new_status != "going" or event.max_capacity is None:
        return
    if current is not None and current.status == "going":
        return
    if going_count(session, event.id) >= event.max_capacity:
        raise CapacityExceeded()


def set_rsvp(
    session: Session, *, event_id: str, user_id: str, status: str
) -> EventRSVP:
    """Record the user's attendance intent, overwriting any earlier answer."""
    normalized = _normalize_status(status)
    event = _load_event_for_rsvp(session, event_id)
    current = get_rsvp(session, event_id, user_id)
    try:
        _enforce_capacity(session, event, new_status=normalized, current=current)
    except CapacityExceeded:
        logger.info("Event %s is full; rejected going RSVP from %s", event_id, user_id)
        raise

    now = utcnow()
    if current is None:
        current = EventRSVP(
            event_id=event_id,
            user_id=user_id,
            status=normalized,
            created_at=now,
            updated_at=now,
        )
        try:
            with session.begin_nested():
                session.add(current)
        except IntegrityError:
            # A concurrent request inserted the row first; overwrite it instead.
            stmt = select(EventRSVP).where(
                EventRSVP.event_id == event_id, EventRSVP.user_id == user_id
            )
            existing = session.scalars(stmt).one()
            _enforce_capacity(session, event, new_status=normalized, current=existing)
            existing.status = normalized
            existing.updated_at = now
            session.flush()
            current = existing
    else:
        current.status = normalized
        current.updated_at = now
        session.add(current)
        session.flush()
    logger.info("RSVP %s for event %s by %s", normalized, event_id, user_id)
    return current


def clear_rsvp(session: Session, *, event_id: str, user_id: str) -> None:
    get_event(session, event_id)
    current = get_rsvp(session, event_id, user_id)
    if current is None:
        raise NoSuchRSVP()
    session.delete(current)
    session.flush()
    logger.info("RSVP cleared for event %s by %s", event_id, user_id)


def can_see_guest_list(session: Session, event: Event, viewer_id: str | None) -> bool:
    if event.guest_list_visibility == "public":
        return True
    if is_event_host(session, event, viewer_id):
        return True
    if event.guest_list_visibility == "rsvp_only":
        return get_rsvp(session, event.id, viewer_id) is not None
    return False


def has_access(session: Session, event_id: str, user_id: str | None) -> bool:
    """Whether the user may read and post event comments."""
    current = get_rsvp(session, event_id, user_id)
    return current is not None and current.status in ACCESS_STATUSES


def guest_list(
    session: Session,
    event: Event,
    viewer_id: str | None,
    *,
    profiles: ProfileStore | None = None,
) -> dict[str, list[dict]]:
    """Going and maybe guests, oldest answer first."""
    if not can_see_guest_list(session, event, viewer_id):
        raise NotAuthorized("The guest list for this event is not visible to you.")
    stmt = (
        select(EventRSVP)
        .where(
            EventRSVP.event_id == event.id,
            EventRSVP.status.in_(sorted(ACCESS_STATUSES)),
        )
        .order_by(EventRSVP.created_at.asc(), EventRSVP.id.asc())
    )
    guests: dict[str, list[dict]] = {"going": [], "maybe": []}
    for rsvp in session.scalars(stmt):
        profile = profiles.get_profile(rsvp.user_id) if profiles else None
        shown = profile is not None and not profile.is_private
        guests[rsvp.status].append(
            {
                "user_id": rsvp.user_id,
                "status": rsvp.status,
                "full_name": profile.full_name if shown else None,
                "avatar_url": profile.avatar_url if shown else None,
                "responded_at": rsvp.updated_at.isoformat(),
            }
        )
    return guests
