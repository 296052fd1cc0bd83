"""Follow relationships on a creator's event groups."""

from __future__ import annotations

import logging
from datetime import date
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .database import unique_write
from .errors import AlreadySubscribed, NotSubscribed
from .events import list_group_events
from .models import Event, EventGroupSubscription
from .utils import start_of_day, utcnow

logger = logging.getLogger("uvicorn.error")


def _clean_group_name(group_name: str) -> str:
    cleaned = (group_name or "").strip()
    if not cleaned:
        raise ValueError("group_name is required")
    return cleaned


def get_subscription(
    session: Session, *, subscriber_id: str, creator_id: str, group_name: str
) -> EventGroupSubscription | None:
    stmt = select(EventGroupSubscription).where(
        EventGroupSubscription.subscriber_id == subscriber_id,
        EventGroupSubscription.creator_id == creator_id,
        EventGroupSubscription.group_name == _clean_group_name(group_name),
    )
    return session.scalars(stmt).first()


def is_subscribed(
    session: Session, *, subscriber_id: str | None, creator_id: str, group_name: str
) -> bool:
    if not subscriber_id:
        return False
    return (
        get_subscription(
            session,
            subscriber_id=subscriber_id,
            creator_id=creator_id,
            group_name=group_name,
        )
        is not None
    )


def subscribe(
    session: Session, *, subscriber_id: str, creator_id: str, group_name: str
) -> EventGroupSubscription:
    cleaned = _clean_group_name(group_name)
    if get_subscription(
        session, subscriber_id=subscriber_id, creator_id=creator_id, group_name=cleaned
    ):
        raise AlreadySubscribed()
    subscription = EventGroupSubscription(
        subscriber_id=subscriber_id,
        creator_id=creator_id,
        group_name=cleaned,
        created_at=utcnow(),
    )
    with unique_write(session, AlreadySubscribed()):
        session.add(subscription)
    logger.info(
        "User %s subscribed to group %r of %s", subscriber_id, cleaned, creator_id
    )
    return subscription


def unsubscribe(
    session: Session, *, subscriber_id: str, creator_id: str, group_name: str
) -> None:
    subscription = get_subscription(
        session,
        subscriber_id=subscriber_id,
        creator_id=creator_id,
        group_name=group_name,
    )
    if subscription is None:
        raise NotSubscribed()
    session.delete(subscription)
    session.flush()
    logger.info(
        "User %s unsubscribed from group %r of %s",
        subscriber_id,
        subscription.group_name,
        creator_id,
    )


def subscriber_count(session: Session, creator_id: str, group_name: str) -> int:
    stmt = select(func.count()).where(
        EventGroupSubscription.creator_id == creator_id,
        EventGroupSubscription.group_name == _clean_group_name(group_name),
    )
    return session.scalar(stmt) or 0


def list_subscriptions(
    session: Session, subscriber_id: str
) -> Sequence[EventGroupSubscription]:
    stmt = (
        select(EventGroupSubscription)
        .where(EventGroupSubscription.subscriber_id == subscriber_id)
        .order_by(
            EventGroupSubscription.group_name.asc(),
            EventGroupSubscription.created_at.asc(),
        )
    )
    return session.scalars(stmt).all()


def upcoming_events_for_subscription(
    session: Session,
    subscription: EventGroupSubscription,
    *,
    today: date | None = None,
) -> Sequence[Event]:
    """Published, non-private group events starting today or later."""
    day = today or utcnow().date()
    return list_group_events(
        session,
        subscription.creator_id,
        subscription.group_name,
        published_only=True,
        include_private=False,
        starts_after=start_of_day(day),
    )
