"""Authenticated landing page."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlmodel import Session

from idp_bridge.api.http.deps import get_db_session
from idp_bridge.core.repositories import UserRepository
from idp_bridge.core.services.authentication_service import (
    SESSION_LOGIN_ERROR_KEY,
    SESSION_USER_KEY,
)

router = APIRouter(tags=["user"])


class UserResponse(BaseModel):
    """The logged-in user as seen by the browser."""

    id: str
    username: str
    email: str | None
    roles: list[str]
    profile: dict[str, Any]


@router.get("/user", response_model=UserResponse)
async def current_user(
    request: Request, db: Session = Depends(get_db_session)
) -> UserResponse:
    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        detail = request.session.pop(SESSION_LOGIN_ERROR_KEY, None) or "Not authenticated"
        raise HTTPException(status_code=401, detail=detail)

    user = UserRepository(db).get(user_id)
    if user is None:
        request.session.pop(SESSION_USER_KEY, None)
        raise HTTPException(status_code=401, detail="Not authenticated")

    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        roles=user.roles,
        profile=user.profile,
    )
