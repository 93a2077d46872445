from __future__ import annotations

from fastapi import APIRouter, Depends, status

from src.application.dtos.common_dto import ErrorResponse, SuccessResponse
from src.application.dtos.meeting_dto import (
    CreateMeetingRequest,
    ListMeetingsResponse,
    MeetingOut,
    MeetingResponse,
    UpdateMeetingRequest,
)
from src.application.use_cases.manage_meeting import ManageMeetingUseCase
from src.infrastructure.api.dependencies import get_current_user, get_meeting_use_case

router = APIRouter(
    prefix="/api/meetings",
    tags=["Meetings"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized - Invalid or missing authentication token"},
        403: {"model": ErrorResponse, "description": "Forbidden - Not allowed to access this meeting"},
        404: {"model": ErrorResponse, "description": "Not Found - Meeting does not exist"},
    },
)


@router.post(
    "",
    response_model=MeetingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Meeting",
    description="""
    Create a meeting owned by the caller, who becomes its first participant.

    **Authentication required**: Yes (Bearer token)
    """,
)
def create_meeting(
    body: CreateMeetingRequest,
    user=Depends(get_current_user),
    uc: ManageMeetingUseCase = Depends(get_meeting_use_case),
):
    """Create a meeting."""
    meeting = uc.create(
        user.id,
        title=body.title,
        description=body.description,
        scheduled_at=body.scheduled_at,
        is_public=body.is_public,
    )
    return MeetingResponse(meeting=MeetingOut.from_entity(meeting))


@router.get(
    "",
    response_model=ListMeetingsResponse,
    summary="List My Meetings",
    description="""
    List the meetings owned by the caller, newest first.

    **Authentication required**: Yes (Bearer token)
    """,
)
def list_meetings(
    user=Depends(get_current_user),
    uc: ManageMeetingUseCase = Depends(get_meeting_use_case),
):
    """List the caller's meetings."""
    meetings = [MeetingOut.from_entity(m) for m in uc.list_owned(user.id)]
    return ListMeetingsResponse(meetings=meetings, count=len(meetings))


@router.get(
    "/{meeting_id}",
    response_model=MeetingResponse,
    summary="Get Meeting",
    description="""
    Retrieve a meeting the caller owns, participates in, or that is public.

    **Side effect**: reading a public meeting you do not participate in yet
    adds you to its participants. Reading it again changes nothing.

    **Authentication required**: Yes (Bearer token)
    """,
)
def get_meeting(
    meeting_id: str,
    user=Depends(get_current_user),
    uc: ManageMeetingUseCase = Depends(get_meeting_use_case),
):
    """Get a meeting, joining it if it is public."""
    return MeetingResponse(meeting=MeetingOut.from_entity(uc.get(user.id, meeting_id)))


@router.put(
    "/{meeting_id}",
    response_model=MeetingResponse,
    summary="Update Meeting",
    description="""
    Update `title`, `description`, `scheduledAt`, `status` or `isPublic`.
    Owner only.

    **Authentication required**: Yes (Bearer token)
    """,
)
def update_meeting(
    meeting_id: str,
    body: UpdateMeetingRequest,
    user=Depends(get_current_user),
    uc: ManageMeetingUseCase = Depends(get_meeting_use_case),
):
    """Update a meeting the caller owns."""
    meeting = uc.update(user.id, meeting_id, body.model_dump(exclude_unset=True))
    return MeetingResponse(meeting=MeetingOut.from_entity(meeting))


@router.delete(
    "/{meeting_id}",
    response_model=SuccessResponse,
    summary="Delete Meeting",
    description="""
    Delete a meeting. Owner only.

    **Authentication required**: Yes (Bearer token)
    """,
)
def delete_meeting(
    meeting_id: str,
    user=Depends(get_current_user),
    uc: ManageMeetingUseCase = Depends(get_meeting_use_case),
):
    """Delete a meeting the caller owns."""
    uc.delete(user.id, meeting_id)
    return SuccessResponse(message="Meeting deleted successfully")
