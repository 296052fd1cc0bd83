"""FastAPI application for Rallypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any
import tomllib

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .collaborators import InMemoryProfileStore, ProfileStore
from .database import SessionLocal
from .errors import NotAuthorized, NoSuchEvent, RallypointError
from .events import (
    add_cohost,
    create_event,
    get_event,
    is_event_host,
    list_cohosts,
    list_group_events,
    remove_cohost,
    update_event,
)
from .models import (
    Event,
    EventCohost,
    EventGroupSubscription,
    Section,
    SectionInvitation,
    SectionMember,
)
from .profiles import (
    completion_percent,
    define_field,
    get_profile_data,
    deactivate_field,
    list_fields,
    member_directory,
    reorder_fields,
    save_profile_data,
    update_field,
)
from .rsvps import (
    can_see_guest_list,
    clear_rsvp,
    get_rsvp,
    guest_list,
    has_access,
    rsvp_counts,
    set_rsvp,
    spots_remaining,
)
from .sections import (
    create_section,
    decide_join,
    get_membership,
    get_section,
    invite_member,
    is_approved_member,
    is_section_admin,
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
from .storage import init_db
from .subscriptions import (
    is_subscribed,
    list_subscriptions,
    subscribe,
    subscriber_count,
    unsubscribe,
    upcoming_events_for_subscription,
)
from .utils import utcnow
from .visibility import (
    ViewerContext,
    set_show_membership,
    show_membership,
    visible_sections,
)

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

USER_HEADER = "x-user-id"


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("rallypoint")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(title="Rallypoint", version=APP_VERSION, lifespan=lifespan)
profile_store: ProfileStore = InMemoryProfileStore()


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_profile_store() -> ProfileStore:
    return profile_store


def current_user_id(request: Request) -> str | None:
    """Opaque identity forwarded by the authenticating proxy."""
    raw = (request.headers.get(USER_HEADER) or "").strip()
    return raw or None


def require_user(user_id: str | None = Depends(current_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Sign in to continue")
    return user_id


@app.exception_handler(RallypointError)
async def rallypoint_error_handler(request: Request, exc: RallypointError):
    return JSONResponse(exc.as_dict(), status_code=exc.status_code)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse({"detail": str(exc)}, status_code=400)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"detail": exc.errors()}, status_code=422)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    return JSONResponse({"detail": detail}, status_code=status)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


# -------- Serializers --------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _serialize_section(db: Session, section: Section) -> dict[str, Any]:
    return {
        "id": section.id,
        "creator_id": section.creator_id,
        "name": section.name,
        "description": section.description,
        "image_url": section.image_url,
        "is_public": section.is_public,
        "requires_approval": section.requires_approval,
        "member_count": member_count(db, section.id),
        "created_at": _iso(section.created_at),
    }


def _serialize_member(member: SectionMember) -> dict[str, Any]:
    return {
        "id": member.id,
        "section_id": member.section_id,
        "user_id": member.user_id,
        "is_admin": member.is_admin,
        "status": member.status,
        "joined_at": _iso(member.joined_at),
        "approved_at": _iso(member.approved_at),
    }


def _serialize_field(profile_field) -> dict[str, Any]:
    return {
        "id": profile_field.id,
        "field_name": profile_field.field_name,
        "field_label": profile_field.field_label,
        "field_type": profile_field.field_type,
        "field_options": list(profile_field.field_options or []),
        "placeholder": profile_field.placeholder,
        "help_text": profile_field.help_text,
        "default_value": profile_field.default_value,
        "is_required": profile_field.is_required,
        "min_length": profile_field.min_length,
        "max_length": profile_field.max_length,
        "validation_pattern": profile_field.validation_pattern,
        "display_order": profile_field.display_order,
        "is_active": profile_field.is_active,
    }


def _serialize_event(
    db: Session, event: Event, viewer_id: str | None = None
) -> dict[str, Any]:
    own = get_rsvp(db, event.id, viewer_id)
    return {
        "id": event.id,
        "creator_id": event.creator_id,
        "title": event.title,
        "description": event.description,
        "starts_at": _iso(event.starts_at),
        "ends_at": _iso(event.ends_at),
        "location": event.location,
        "image_url": event.image_url,
        "tags": list(event.tags or []),
        "published": event.published,
        "is_private": event.is_private,
        "group_name": event.group_name,
        "max_capacity": event.max_capacity,
        "guest_list_visibility": event.guest_list_visibility,
        "counts": rsvp_counts(db, event.id),
        "spots_remaining": spots_remaining(db, event),
        "user_rsvp_status": own.status if own else None,
        "can_see_guest_list": can_see_guest_list(db, event, viewer_id),
    }


def _serialize_subscription(sub: EventGroupSubscription) -> dict[str, Any]:
    return {
        "id": sub.id,
        "subscriber_id": sub.subscriber_id,
        "creator_id": sub.creator_id,
        "group_name": sub.group_name,
        "created_at": _iso(sub.created_at),
    }


def _visible_event(db: Session, event_id: str, viewer_id: str | None) -> Event:
    """Private events are reachable by link; drafts only by hosts and responders."""
    event = get_event(db, event_id)
    if event.published or is_event_host(db, event, viewer_id):
        return event
    if get_rsvp(db, event.id, viewer_id) is None:
        raise NoSuchEvent()
    return event


def _serialize_invitation(invitation: SectionInvitation) -> dict[str, Any]:
    return {
        "id": invitation.id,
        "section_id": invitation.section_id,
        "user_id": invitation.user_id,
        "invited_by": invitation.invited_by,
        "status": invitation.status,
        "message": invitation.message,
        "invited_at": _iso(invitation.invited_at),
        "responded_at": _iso(invitation.responded_at),
    }


def _serialize_cohost(cohost: EventCohost) -> dict[str, Any]:
    return {
        "user_id": cohost.user_id,
        "role": cohost.role,
        "added_by": cohost.added_by,
        "created_at": _iso(cohost.created_at),
    }



# -------- Payloads --------


class SectionCreatePayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    image_url: str | None = None
    is_public: bool = True
    requires_approval: bool = False


class SectionUpdatePayload(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    image_url: str | None = None
    is_public: bool | None = None
    requires_approval: bool | None = None


class JoinDecisionPayload(BaseModel):
    decision: str


class AdminTogglePayload(BaseModel):
    is_admin: bool


class FieldCreatePayload(BaseModel):
    field_label: str = Field(..., min_length=1, max_length=255)
    field_type: str
    field_name: str | None = None
    field_options: list[Any] = Field(default_factory=list)
    placeholder: str | None = None
    help_text: str | None = None
    default_value: str | None = None
    is_required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    validation_pattern: str | None = None


class FieldUpdatePayload(BaseModel):
    field_label: str | None = None
    field_options: list[Any] | None = None
    placeholder: str | None = None
    help_text: str | None = None
    default_value: str | None = None
    is_required: bool | None = None
    min_length: int | None = None
    max_length: int | None = None
    validation_pattern: str | None = None
    is_active: bool | None = None


class FieldOrderPayload(BaseModel):
    field_ids: list[str]


class ProfileDataPayload(BaseModel):
    answers: dict[str, Any]


class VisibilityPayload(BaseModel):
    show_membership: bool


class EventCreatePayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    starts_at: datetime
    ends_at: datetime | None = None
    description: str | None = None
    location: str | None = None
    image_url: str | None = None
    tags: list[str] = Field(default_factory=list)
    published: bool = True
    is_private: bool = False
    group_name: str | None = None
    max_capacity: int | None = Field(None, ge=1)
    guest_list_visibility: str = "rsvp_only"


class EventUpdatePayload(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    description: str | None = None
    location: str | None = None
    image_url: str | None = None
    tags: list[str] | None = None
    published: bool | None = None
    is_private: bool | None = None
    group_name: str | None = None
    max_capacity: int | None = Field(None, ge=1)
    guest_list_visibility: str | None = None


class RSVPPayload(BaseModel):
    status: str


class InvitationPayload(BaseModel):
    user_id: str = Field(..., min_length=1)
    message: str | None = None


class InvitationResponsePayload(BaseModel):
    accept: bool


class CohostPayload(BaseModel):
    user_id: str = Field(..., min_length=1)
    role: str = "cohost"


class SubscriptionPayload(BaseModel):
    creator_id: str = Field(..., min_length=1)
    group_name: str = Field(..., min_length=1, max_length=255)


# -------- Sections --------


@app.get("/api/health")
def health_check():
    return {"status": "ok"}


@app.get("/api/v1/sections")
def api_list_sections(
    q: str | None = Query(None),
    creator_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    sections = list_sections(db, public_only=True, creator_id=creator_id, search_term=q)
    return {"sections": [_serialize_section(db, s) for s in sections]}


@app.post("/api/v1/sections", status_code=201)
def api_create_section(
    payload: SectionCreatePayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    section = create_section(db, creator_id=user_id, **payload.model_dump())
    return {"section": _serialize_section(db, section)}


@app.get("/api/v1/sections/{section_id}")
def api_get_section(
    section_id: str,
    user_id: str | None = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    section = get_section(db, section_id)
    membership = get_membership(db, section_id, user_id) if user_id else None
    return {
        "section": _serialize_section(db, section),
        "membership": _serialize_member(membership) if membership else None,
        "fields": [_serialize_field(f) for f in list_fields(db, section_id)],
    }


@app.patch("/api/v1/sections/{section_id}")
def api_update_section(
    section_id: str,
    payload: SectionUpdatePayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    section = update_section(db, section_id, actor_id=user_id, **changes)
    return {"section": _serialize_section(db, section)}


@app.post("/api/v1/sections/{section_id}/members", status_code=201)
def api_join_section(
    section_id: str,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    member = request_join(db, section_id=section_id, user_id=user_id)
    return {"member": _serialize_member(member)}


@app.delete("/api/v1/sections/{section_id}/members/self", status_code=204)
def api_leave_section(
    section_id: str,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    leave_section(db, section_id=section_id, user_id=user_id)
    return Response(status_code=204)


@app.get("/api/v1/sections/{section_id}/members")
def api_list_members(
    section_id: str,
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    user_id: str | None = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    section = get_section(db, section_id)
    admin = is_section_admin(db, section_id, user_id)
    if not admin:
        if status not in (None, "approved"):
            raise NotAuthorized("Only section admins can see pending or rejected members.")
        if not section.is_public and not is_approved_member(db, section_id, user_id):
            raise NotAuthorized("Join this section to see its members.")
        status = "approved"
    members = list_members(db, section_id, status=status)
    per_page = config.settings.members_per_page
    start = (page - 1) * per_page
    return {
        "members": [_serialize_member(m) for m in members[start : start + per_page]],
        "count": len(members),
        "page": page,
        "per_page": per_page,
    }


@app.post("/api/v1/sections/{section_id}/members/{target_user_id}/decision")
def api_decide_join(
    section_id: str,
    target_user_id: str,
    payload: JoinDecisionPayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    member = decide_join(
        db,
        section_id=section_id,
        target_user_id=target_user_id,
        decided_by=user_id,
        decision=payload.decision,
    )
    return {"member": _serialize_member(member)}


@app.put("/api/v1/sections/{section_id}/members/{target_user_id}/admin")
def api_set_admin(
    section_id: str,
    target_user_id: str,
    payload: AdminTogglePayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    member = set_admin(
        db,
        section_id=section_id,
        target_user_id=target_user_id,
        actor_id=user_id,
        is_admin=payload.is_admin,
    )
    return {"member": _serialize_member(member)}


@app.get("/api/v1/sections/{section_id}/directory")
def api_member_directory(
    section_id: str,
    user_id: str | None = Depends(current_user_id),
    profiles: ProfileStore = Depends(get_profile_store),
    db: Session = Depends(get_db),
):
    return {
        "members": member_directory(
            db, section_id, viewer_id=user_id, profiles=profiles
        )
    }


# -------- Profile fields --------


@app.get("/api/v1/sections/{section_id}/fields")
def api_list_fields(
    section_id: str,
    include_inactive: bool = Query(False),
    user_id: str | None = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    get_section(db, section_id)
    if include_inactive and not is_section_admin(db, section_id, user_id):
        raise NotAuthorized("Only section admins can see inactive fields.")
    fields = list_fields(db, section_id, include_inactive=include_inactive)
    return {"fields": [_serialize_field(f) for f in fields]}


@app.post("/api/v1/sections/{section_id}/fields", status_code=201)
def api_define_field(
    section_id: str,
    payload: FieldCreatePayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    profile_field = define_field(
        db, section_id=section_id, actor_id=user_id, **payload.model_dump()
    )
    return {"field": _serialize_field(profile_field)}


@app.put("/api/v1/sections/{section_id}/fields/order")
def api_reorder_fields(
    section_id: str,
    payload: FieldOrderPayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    ordered = reorder_fields(
        db, section_id=section_id, actor_id=user_id, field_ids=payload.field_ids
    )
    return {"fields": [_serialize_field(f) for f in ordered]}


@app.patch("/api/v1/sections/{section_id}/fields/{field_id}")
def api_update_field(
    section_id: str,
    field_id: str,
    payload: FieldUpdatePayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    profile_field = update_field(
        db,
        section_id=section_id,
        field_id=field_id,
        actor_id=user_id,
        **payload.model_dump(exclude_unset=True),
    )
    return {"field": _serialize_field(profile_field)}


@app.delete("/api/v1/sections/{section_id}/fields/{field_id}")
def api_deactivate_field(
    section_id: str,
    field_id: str,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    profile_field = deactivate_field(
        db, section_id=section_id, field_id=field_id, actor_id=user_id
    )
    return {"field": _serialize_field(profile_field)}


@app.get("/api/v1/sections/{section_id}/profile")
def api_get_profile_data(
    section_id: str,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    get_section(db, section_id)
    return {
        "answers": get_profile_data(db, user_id=user_id, section_id=section_id),
        "completion_percent": completion_percent(
            db, user_id=user_id, section_id=section_id
        ),
    }


@app.put("/api/v1/sections/{section_id}/profile")
def api_save_profile_data(
    section_id: str,
    payload: ProfileDataPayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    answers = save_profile_data(
        db, user_id=user_id, section_id=section_id, answers=payload.answers
    )
    return {
        "answers": answers,
        "completion_percent": completion_percent(
            db, user_id=user_id, section_id=section_id
        ),
    }


@app.get("/api/v1/sections/{section_id}/visibility")
def api_get_visibility(
    section_id: str,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    get_section(db, section_id)
    return {
        "section_id": section_id,
        "show_membership": show_membership(
            db, user_id=user_id, section_id=section_id
        ),
    }


@app.put("/api/v1/sections/{section_id}/visibility")
def api_set_visibility(
    section_id: str,
    payload: VisibilityPayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    row = set_show_membership(
        db, user_id=user_id, section_id=section_id, show=payload.show_membership
    )
    return {"section_id": section_id, "show_membership": row.show_membership}


@app.get("/api/v1/users/{member_id}/sections")
def api_visible_sections(
    member_id: str,
    view: str = Query("public", pattern="^(public|self|preview)$"),
    section_id: str | None = Query(None),
    user_id: str | None = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    if view == "public":
        viewer = ViewerContext.public()
    else:
        if user_id != member_id:
            raise NotAuthorized("Only the profile owner can use this view.")
        if view == "self":
            viewer = ViewerContext.self_edit()
        else:
            if not section_id:
                raise HTTPException(status_code=400, detail="section_id is required")
            viewer = ViewerContext.preview(section_id)
    sections = visible_sections(db, member_id, viewer)
    return {"sections": [_serialize_section(db, s) for s in sections]}


# -------- Events & RSVPs --------


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    event = create_event(db, creator_id=user_id, **payload.model_dump())
    return {"event": _serialize_event(db, event, user_id)}


@app.get("/api/v1/events/{event_id}")
def api_get_event(
    event_id: str,
    user_id: str | None = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    event = _visible_event(db, event_id, user_id)
    return {"event": _serialize_event(db, event, user_id)}


@app.patch("/api/v1/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdatePayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    event = update_event(db, event_id, actor_id=user_id, **changes)
    return {"event": _serialize_event(db, event, user_id)}


@app.put("/api/v1/events/{event_id}/rsvp")
def api_set_rsvp(
    event_id: str,
    payload: RSVPPayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    _visible_event(db, event_id, user_id)
    rsvp = set_rsvp(db, event_id=event_id, user_id=user_id, status=payload.status)
    event = get_event(db, event_id)
    return {
        "rsvp": {
            "event_id": rsvp.event_id,
            "user_id": rsvp.user_id,
            "status": rsvp.status,
            "updated_at": _iso(rsvp.updated_at),
        },
        "counts": rsvp_counts(db, event_id),
        "spots_remaining": spots_remaining(db, event),
    }


@app.delete("/api/v1/events/{event_id}/rsvp", status_code=204)
def api_clear_rsvp(
    event_id: str,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    clear_rsvp(db, event_id=event_id, user_id=user_id)
    return Response(status_code=204)


@app.get("/api/v1/events/{event_id}/counts")
def api_event_counts(
    event_id: str,
    user_id: str | None = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    event = _visible_event(db, event_id, user_id)
    return {
        "counts": rsvp_counts(db, event.id),
        "spots_remaining": spots_remaining(db, event),
    }


@app.get("/api/v1/events/{event_id}/guests")
def api_guest_list(
    event_id: str,
    user_id: str | None = Depends(current_user_id),
    profiles: ProfileStore = Depends(get_profile_store),
    db: Session = Depends(get_db),
):
    event = _visible_event(db, event_id, user_id)
    return {"guests": guest_list(db, event, user_id, profiles=profiles)}


@app.get("/api/v1/events/{event_id}/access")
def api_comment_access(
    event_id: str,
    user_id: str | None = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    get_event(db, event_id)
    return {"has_access": has_access(db, event_id, user_id)}


# -------- Invitations --------


@app.post("/api/v1/sections/{section_id}/invitations", status_code=201)
def api_invite_member(
    section_id: str,
    payload: InvitationPayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    invitation = invite_member(
        db,
        section_id=section_id,
        user_id=payload.user_id,
        invited_by=user_id,
        message=payload.message,
    )
    return {"invitation": _serialize_invitation(invitation)}


@app.get("/api/v1/sections/{section_id}/invitations")
def api_section_invitations(
    section_id: str,
    status: str | None = Query("pending"),
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    get_section(db, section_id)
    if not is_section_admin(db, section_id, user_id):
        raise NotAuthorized("Only section admins can see invitations.")
    invitations = list_invitations(db, section_id=section_id, status=status)
    return {"invitations": [_serialize_invitation(i) for i in invitations]}


@app.get("/api/v1/invitations")
def api_my_invitations(
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    invitations = list_invitations(db, user_id=user_id)
    return {"invitations": [_serialize_invitation(i) for i in invitations]}


@app.post("/api/v1/invitations/{invitation_id}/response")
def api_respond_invitation(
    invitation_id: str,
    payload: InvitationResponsePayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    invitation = respond_invitation(
        db, invitation_id=invitation_id, user_id=user_id, accept=payload.accept
    )
    member = get_membership(db, invitation.section_id, user_id)
    return {
        "invitation": _serialize_invitation(invitation),
        "membership": _serialize_member(member) if member else None,
    }


# -------- Co-hosts --------


@app.get("/api/v1/events/{event_id}/cohosts")
def api_list_cohosts(
    event_id: str,
    user_id: str | None = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    _visible_event(db, event_id, user_id)
    return {"cohosts": [_serialize_cohost(c) for c in list_cohosts(db, event_id)]}


@app.post("/api/v1/events/{event_id}/cohosts", status_code=201)
def api_add_cohost(
    event_id: str,
    payload: CohostPayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    cohost = add_cohost(
        db,
        event_id=event_id,
        user_id=payload.user_id,
        added_by=user_id,
        role=payload.role,
    )
    return {"cohost": _serialize_cohost(cohost)}


@app.delete("/api/v1/events/{event_id}/cohosts/{cohost_id}", status_code=204)
def api_remove_cohost(
    event_id: str,
    cohost_id: str,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    remove_cohost(db, event_id=event_id, user_id=cohost_id, actor_id=user_id)
    return Response(status_code=204)


# -------- Groups & subscriptions --------


@app.get("/api/v1/groups/{creator_id}/{group_name}")
def api_group_detail(
    creator_id: str,
    group_name: str,
    user_id: str | None = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    today = utcnow().date()
    events = list_group_events(db, creator_id, group_name)
    upcoming = [e for e in events if e.starts_at.date() >= today]
    past = [e for e in reversed(events) if e.starts_at.date() < today]
    return {
        "creator_id": creator_id,
        "group_name": group_name,
        "subscriber_count": subscriber_count(db, creator_id, group_name),
        "is_subscribed": is_subscribed(
            db, subscriber_id=user_id, creator_id=creator_id, group_name=group_name
        ),
        "upcoming_events": [_serialize_event(db, e, user_id) for e in upcoming],
        "past_events": [_serialize_event(db, e, user_id) for e in past],
    }


@app.get("/api/v1/subscriptions")
def api_my_subscriptions(
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    payload = []
    for sub in list_subscriptions(db, user_id):
        entry = _serialize_subscription(sub)
        entry["upcoming_events"] = [
            _serialize_event(db, e, user_id)
            for e in upcoming_events_for_subscription(db, sub)
        ]
        payload.append(entry)
    return {"subscriptions": payload}


@app.post("/api/v1/subscriptions", status_code=201)
def api_subscribe(
    payload: SubscriptionPayload,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    sub = subscribe(
        db,
        subscriber_id=user_id,
        creator_id=payload.creator_id,
        group_name=payload.group_name,
    )
    return {
        "subscription": _serialize_subscription(sub),
        "subscriber_count": subscriber_count(db, sub.creator_id, sub.group_name),
    }


@app.delete("/api/v1/subscriptions/{creator_id}/{group_name}", status_code=204)
def api_unsubscribe(
    creator_id: str,
    group_name: str,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    unsubscribe(db, subscriber_id=user_id, creator_id=creator_id, group_name=group_name)
    return Response(status_code=204)
