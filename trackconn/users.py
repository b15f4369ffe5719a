"""Routes for the authenticated user's profile."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from . import crud, schemas
from .auth import cache_user, get_current_user
from .database import get_db
from .models import User

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
def read_me(current_user: User = Depends(get_current_user)):
    """
    Retrieve details of the currently authenticated user.

    Args:
        current_user (User): Authenticated user obtained from JWT token.

    Returns:
        UserOut: User profile information.
    """
    return current_user


@router.patch("/me", response_model=schemas.UserOut)
async def update_me(
    changes: schemas.UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update the profile of the authenticated user.

    The name set here replaces ``[Your Name]`` in follow-up messages.

    Args:
        changes (UserUpdate): Fields to update.
        current_user (User): Authenticated user.
        db (Session): Database session.

    Returns:
        UserOut: Updated user profile.
    """
    # the session is synchronous; keep it off the event loop
    user = await run_in_threadpool(
        crud.update_user,
        db,
        current_user,
        changes.model_dump(exclude_unset=True, exclude_none=True),
    )
    await cache_user(user)
    return user
