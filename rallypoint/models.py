"""SQLAlchemy models for Rallypoint."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()

MEMBER_STATUSES = ("pending", "approved", "rejected")
RSVP_STATUSES = ("going", "maybe", "not_going")
GUEST_LIST_VISIBILITIES = ("public", "rsvp_only", "hidden")
INVITATION_STATUSES = ("pending", "accepted", "declined")
COHOST_ROLES = ("cohost", "organizer", "moderator")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class Section(Base):
    __tablename__ = "sections"
    __table_args__ = (
        UniqueConstraint("creator_id", "name", name="uq_sections_creator_name"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    creator_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(1024), nullable=True)
    is_public = Column(Boolean, default=True, nullable=False)
    requires_approval = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    members = relationship(
        "SectionMember",
        back_populates="section",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    fields = relationship(
        "SectionProfileField",
        back_populates="section",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SectionProfileField.display_order",
    )


class SectionMember(Base):
    __tablename__ = "section_members"
    __table_args__ = (
        UniqueConstraint("section_id", "user_id", name="uq_section_members_pair"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    section_id = Column(
        String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(64), nullable=False, index=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    status = Column(String(16), default="pending", nullable=False)
    joined_at = Column(DateTime, default=_now, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(String(64), nullable=True)

    section = relationship("Section", back_populates="members")


class SectionInvitation(Base):
    __tablename__ = "section_invitations"
    __table_args__ = (
        Index(
            "uq_section_invitations_pending",
            "section_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    section_id = Column(
        String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(64), nullable=False, index=True)
    invited_by = Column(String(64), nullable=False)
    status = Column(String(16), default="pending", nullable=False)
    message = Column(Text, nullable=True)
    invited_at = Column(DateTime, default=_now, nullable=False)
    responded_at = Column(DateTime, nullable=True)


class SectionProfileField(Base):
    __tablename__ = "section_profile_fields"
    __table_args__ = (
        UniqueConstraint("section_id", "field_name", name="uq_profile_fields_name"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    section_id = Column(
        String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=False
    )
    field_name = Column(String(128), nullable=False)
    field_label = Column(String(255), nullable=False)
    field_type = Column(String(16), nullable=False)
    field_options = Column(JSON, default=list, nullable=False)
    placeholder = Column(String(255), nullable=True)
    help_text = Column(Text, nullable=True)
    default_value = Column(Text, nullable=True)
    is_required = Column(Boolean, default=False, nullable=False)
    min_length = Column(Integer, nullable=True)
    max_length = Column(Integer, nullable=True)
    validation_pattern = Column(String(512), nullable=True)
    display_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)
    created_by = Column(String(64), nullable=True)

    section = relationship("Section", back_populates="fields")


class SectionProfileData(Base):
    __tablename__ = "section_profile_data"
    __table_args__ = (
        UniqueConstraint("user_id", "field_id", name="uq_profile_data_user_field"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    section_id = Column(
        String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=False
    )
    field_id = Column(
        String(36),
        ForeignKey("section_profile_fields.id", ondelete="CASCADE"),
        nullable=False,
    )
    value = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class SectionVisibility(Base):
    __tablename__ = "section_membership_visibility"
    __table_args__ = (
        UniqueConstraint("user_id", "section_id", name="uq_section_visibility_pair"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    section_id = Column(
        String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=False
    )
    show_membership = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    creator_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=True)
    location = Column(String(255), nullable=True)
    image_url = Column(String(1024), nullable=True)
    tags = Column(JSON, default=list, nullable=False)
    published = Column(Boolean, default=True, nullable=False)
    is_private = Column(Boolean, default=False, nullable=False)
    group_name = Column(String(255), nullable=True)
    max_capacity = Column(Integer, nullable=True)
    guest_list_visibility = Column(String(16), default="rsvp_only", nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    rsvps = relationship(
        "EventRSVP",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class EventRSVP(Base):
    __tablename__ = "event_rsvps"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_rsvps_pair"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(64), nullable=False, index=True)
    status = Column(String(16), default="going", nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    event = relationship("Event", back_populates="rsvps")


class EventGroupSubscription(Base):
    __tablename__ = "event_group_subscriptions"
    __table_args__ = (
        UniqueConstraint(
            "subscriber_id",
            "creator_id",
            "group_name",
            name="uq_group_subscriptions_triple",
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    subscriber_id = Column(String(64), nullable=False, index=True)
    creator_id = Column(String(64), nullable=False, index=True)
    group_name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class EventCohost(Base):
    __tablename__ = "event_cohosts"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_cohosts_pair"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(64), nullable=False, index=True)
    added_by = Column(String(64), nullable=True)
    role = Column(String(16), default="cohost", nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
