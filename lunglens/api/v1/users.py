"""Clinician account API routes."""

import logging
from fastapi import APIRouter, Depends, status, HTTPException
from lunglens.api.deps import get_user_store
from lunglens.models.user import User
from lunglens.schemas.users import LoginRequest, UserResponse
from lunglens.services.user_service import UserStore

logger = logging.getLogger(__name__)
router = APIRouter(tags=["users"])


def to_user_response(user: User) -> UserResponse:
    return UserResponse(userId=user.user_id, name=user.name, role=user.role)


@router.get("/users/{user_id}", response_model=UserResponse, status_code=status.HTTP_200_OK)
async def get_user_endpoint(
    user_id: str,
    store: UserStore = Depends(get_user_store),
) -> UserResponse:
    """Get a clinician's public profile."""
    try:
        user = await store.get_user(user_id)
    except Exception as e:
        logger.error(f"Error fetching user {user_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error"
        )

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return to_user_response(user)


@router.post("/login", response_model=UserResponse, status_code=status.HTTP_200_OK)
async def login_endpoint(
    credentials: LoginRequest,
    store: UserStore = Depends(get_user_store),
) -> UserResponse:
    """Check a clinician's credentials and return their profile and role."""
    try:
        user = await store.authenticate(credentials.userId, credentials.password)
    except Exception as e:
        logger.error(f"Error during login for {credentials.userId}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error"
        )

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID or password"
        )
    return to_user_response(user)
