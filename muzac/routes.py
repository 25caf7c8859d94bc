"""
HTTP routes for the Muzac API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from muzac.auth import bearer_token, get_current_user, get_optional_user
from muzac.db import LANGUAGES, DEFAULT_LANGUAGE, DbClient, Person
from muzac.dependencies import (
    get_db_client,
    get_identity_provider,
    get_image_calendar,
    get_video_service,
)
from muzac.errors import (
    AuthenticationFailure,
    NotFound,
    UpstreamFailure,
    ValidationFailure,
)
from muzac.family_tree import DEFAULT_ROOT_ID, FamilyTree, TreeView, render_text
from muzac.identity import AuthenticatedUser, IdentityProvider
from muzac.image_utils import decode_image_data
from muzac.images import SHARED_OWNER, ImageCalendar
from muzac.schemas import (
    ChildrenResponse,
    ConfirmRequest,
    Credentials,
    ImagesResponse,
    LoginResponse,
    LoginUser,
    MembersResponse,
    MessageResponse,
    ParentsResponse,
    PersonCreate,
    PersonOut,
    PreferencesResponse,
    PreferencesUpdate,
    RenderRequest,
    RenderStartResponse,
    RenderStatusResponse,
    ResendRequest,
    SuccessResponse,
    TreeResponse,
    UploadRequest,
    UploadResponse,
    UserInfo,
    VerifyResponse,
)
from muzac.video import VideoService

logger = logging.getLogger(__name__)

router = APIRouter()


def _person_out(person: Person) -> PersonOut:
    return PersonOut(**person.as_dict())


# ------------------------------------------------------------------
# Auth
# ------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
def login(
    payload: Credentials,
    identity: IdentityProvider = Depends(get_identity_provider),
):
    token = identity.login(payload.email, payload.password)
    return LoginResponse(token=token, user=LoginUser(email=payload.email))


@router.post("/auth/register", response_model=MessageResponse)
def register(
    payload: Credentials,
    identity: IdentityProvider = Depends(get_identity_provider),
):
    identity.register(payload.email, payload.password)
    return MessageResponse(message="Registration successful. Please check your email.")


@router.post("/auth/confirm", response_model=MessageResponse)
def confirm_registration(
    payload: ConfirmRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
):
    identity.confirm_registration(payload.email, payload.code)
    return MessageResponse(message="Email verified successfully. You can now login.")


@router.post("/auth/resend", response_model=MessageResponse)
def resend_confirmation_code(
    payload: ResendRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
):
    identity.resend_confirmation_code(payload.email)
    return MessageResponse(
        message="Verification code resent. Please check your email."
    )


@router.get("/auth/verify", response_model=VerifyResponse)
def verify_access_token(
    authorization: Optional[str] = Header(default=None),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    token = bearer_token(authorization)
    if not token:
        raise AuthenticationFailure("No token provided", envelope_key="message")
    user = identity.verify_access_token(token)
    return VerifyResponse(user=UserInfo(**user.as_dict()))


# ------------------------------------------------------------------
# Images
# ------------------------------------------------------------------


def _owner(user: Optional[AuthenticatedUser]) -> str:
    if user is None or not user.email:
        return SHARED_OWNER
    return user.email


@router.post("/upload", response_model=UploadResponse)
def upload_image(
    payload: UploadRequest,
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    calendar: ImageCalendar = Depends(get_image_calendar),
):
    if not payload.imageData:
        raise ValidationFailure("No image data provided", envelope_key="message")
    image_bytes = decode_image_data(payload.imageData)

    owner = _owner(user)
    logger.info("Uploading for user: %s", owner)
    try:
        day = calendar.upload_image(owner, image_bytes)
    except UpstreamFailure as exc:
        raise UpstreamFailure(
            "Upload failed", envelope_key="message", extra={"error": exc.message}
        ) from exc
    return UploadResponse(message="Image uploaded successfully", date=day)


@router.get("/images", response_model=ImagesResponse)
def list_images(
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    calendar: ImageCalendar = Depends(get_image_calendar),
):
    try:
        images = calendar.list_images(_owner(user))
    except UpstreamFailure as exc:
        raise UpstreamFailure("Failed to load images") from exc
    return {"images": [image.as_dict() for image in images]}


# ------------------------------------------------------------------
# Preferences
# ------------------------------------------------------------------


@router.get("/preferences", response_model=PreferencesResponse)
def get_preferences(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    prefs = db.get_preferences(user.sub)
    language = prefs.language if prefs else DEFAULT_LANGUAGE
    if language not in LANGUAGES:
        language = DEFAULT_LANGUAGE
    return PreferencesResponse(language=language)


@router.put("/preferences", response_model=SuccessResponse)
def update_preferences(
    payload: PreferencesUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    if payload.language not in LANGUAGES:
        raise ValidationFailure("Invalid language")
    db.save_preferences(user.sub, payload.language)
    return SuccessResponse(success=True)


# ------------------------------------------------------------------
# Video
# ------------------------------------------------------------------


@router.post("/video/render", response_model=RenderStartResponse)
def render_video(
    payload: RenderRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    videos: VideoService = Depends(get_video_service),
):
    job = videos.start_render(user.sub, payload.model_dump())
    return job.as_dict()


@router.get("/video/status/{render_id}", response_model=RenderStatusResponse)
def render_status(
    render_id: str,
    outName: Optional[str] = Query(default=None),
    user: AuthenticatedUser = Depends(get_current_user),
    videos: VideoService = Depends(get_video_service),
):
    status = videos.poll_render_status(render_id, outName)
    return status.as_dict()


# ------------------------------------------------------------------
# Family tree
# ------------------------------------------------------------------


@router.get("/familyTree", response_model=MembersResponse)
def list_members(db: DbClient = Depends(get_db_client)):
    return MembersResponse(members=[_person_out(p) for p in db.get_all_members()])


@router.post("/familyTree", response_model=PersonOut, status_code=201)
def create_member(payload: PersonCreate, db: DbClient = Depends(get_db_client)):
    person = db.create_member(payload.as_record())
    logger.info("Created family member %s", person.id)
    return _person_out(person)


@router.get("/familyTree/children/{member_id}", response_model=ChildrenResponse)
def list_children(member_id: str, db: DbClient = Depends(get_db_client)):
    return ChildrenResponse(children=[_person_out(p) for p in db.get_children(member_id)])


@router.get("/familyTree/parents/{member_id}", response_model=ParentsResponse)
def list_parents(member_id: str, db: DbClient = Depends(get_db_client)):
    return ParentsResponse(parents=[_person_out(p) for p in db.get_parents(member_id)])


def _render_tree(db: DbClient, root_id: str, expand: bool) -> dict:
    view = TreeView(FamilyTree(db.get_all_members()))
    if expand:
        view.expand_all()
    node = view.render(root_id)
    if node is None:
        raise NotFound("Member not found")
    return {"root": node.as_dict(), "text": render_text(node)}


@router.get("/familyTreeView", response_model=TreeResponse)
def render_default_tree(
    expand: bool = Query(default=False),
    db: DbClient = Depends(get_db_client),
):
    return _render_tree(db, DEFAULT_ROOT_ID, expand)


@router.get("/familyTreeView/{member_id}", response_model=TreeResponse)
def render_tree(
    member_id: str,
    expand: bool = Query(default=False),
    db: DbClient = Depends(get_db_client),
):
    return _render_tree(db, member_id, expand)


@router.get("/familyTree/{member_id}", response_model=PersonOut)
def get_member(member_id: str, db: DbClient = Depends(get_db_client)):
    person = db.get_member(member_id)
    if person is None:
        raise NotFound("Member not found")
    return _person_out(person)
