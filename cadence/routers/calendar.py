"""Calendar router: token-authenticated iCalendar feed and feed token management."""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request, Response
from typing import Optional
import os

from sqlmodel import Session, select

from cadence.models.project import Project
from cadence.models.user import User
from cadence.schemas.calendar import CalendarTokenCreate, CalendarTokenResponse, FeedUrlResponse
from cadence.services.api_token_service import ApiTokenService
from cadence.services.calendar_projector import build_calendar
from cadence.services.task_service import TaskService
from cadence.middleware.auth import get_current_user, CurrentUser, ensure_user_access
from cadence.db.config import get_session
from cadence.utils.logger import get_logger

logger = get_logger(__name__)

# Host part of VEVENT UIDs; keep stable so subscribers do not see duplicates
CALENDAR_HOST_ID = os.environ.get("CALENDAR_HOST_ID", "cadence.local")

router = APIRouter(tags=["Calendar"])


def feed_url_for(request: Request, token: str) -> str:
    return str(request.url_for("calendar_feed").include_query_params(token=token))


@router.get("/calendar/feed.ics", name="calendar_feed")
async def calendar_feed(
    token: Optional[str] = Query(None, description="Calendar feed token"),
    completed: Optional[str] = Query(None, description='"true" or "1" includes completed tasks'),
    project: Optional[str] = Query(None, description="Filter by project ID"),
    session: Session = Depends(get_session),
):
    """iCalendar feed of the token owner's due-dated tasks.

    Calendar apps cannot send headers, so the token travels as a query parameter.
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Calendar token required"
        )

    api_token = ApiTokenService(session).find_valid(token)
    if api_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired calendar token"
        )

    user = session.get(User, api_token.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired calendar token"
        )

    project_id = None
    if project:
        try:
            project_id = int(project)
        except ValueError:
            # Unparseable project filters are ignored
            project_id = None

    tasks = TaskService(session).get_calendar_tasks(
        user.id,
        include_completed=completed in ("true", "1"),
        project_id=project_id,
    )
    projects = {
        p.id: p.name
        for p in session.exec(select(Project).where(Project.user_id == user.id)).all()
    }

    body = build_calendar(
        tasks,
        calendar_name=f"cadence Tasks - {user.name or user.email}",
        host_id=CALENDAR_HOST_ID,
        projects=projects,
    )
    logger.info("Rendered calendar feed", user_id=user.id, events=len(tasks))
    return Response(
        content=body,
        media_type="text/calendar; charset=utf-8",
        headers={
            "Content-Disposition": 'inline; filename="cadence-tasks.ics"',
            "Cache-Control": "no-cache, no-store, must-revalidate",
        },
    )


@router.post(
    "/{user_id}/calendar/tokens",
    response_model=CalendarTokenResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_calendar_token(
    user_id: str,
    request: Request,
    body: Optional[CalendarTokenCreate] = None,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Issue a feed token. The raw token is shown only in this response."""
    ensure_user_access(user_id, current_user)

    expires_in_days = body.expires_in_days if body else None
    raw_token, token = ApiTokenService(session).issue(user_id, expires_in_days)
    return CalendarTokenResponse(
        id=token.id,
        token=raw_token,
        token_prefix=token.token_prefix,
        feed_url=feed_url_for(request, raw_token),
        created_at=token.created_at,
        expires_at=token.expires_at,
    )


@router.get("/{user_id}/calendar/feed-url", response_model=FeedUrlResponse)
async def get_feed_url(
    user_id: str,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Feed base URL and whether a token exists. Raw tokens are not stored, so the
    caller appends its own `?token=`.
    """
    ensure_user_access(user_id, current_user)

    feed_url = str(request.url_for("calendar_feed"))
    active = ApiTokenService(session).list_active(user_id)
    if not active:
        return FeedUrlResponse(feed_url=feed_url, has_token=False)
    return FeedUrlResponse(feed_url=feed_url, has_token=True, token_prefix=active[0].token_prefix)
