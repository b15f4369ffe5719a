"""Tag routes for the TrackConnections API."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import get_current_user
from .database import get_db
from .enrichment import enrich_log_entries
from .models import Tag, User

router = APIRouter(prefix="/tags", tags=["tags"])


def get_owned_tag(db: Session, tag_id: int, user: User) -> Tag:
    """Load a tag of the user or answer 404."""
    tag = crud.get_tag(db, tag_id, user.id)
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")
    return tag


@router.get("/", response_model=List[schemas.TagOut])
def list_tags(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List the current user's tags by name."""
    return crud.get_tags(db, current_user.id)


@router.post("/", response_model=schemas.TagOut, status_code=201)
def create_tag(
    tag_in: schemas.TagCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Create a tag for the current user.

    Raises:
        HTTPException: If a tag with the same name exists.
    """
    return crud.create_tag(db, tag_in, current_user.id)


@router.delete("/{tag_id}")
def delete_tag(
    tag_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete a tag and remove it from every log entry."""
    crud.delete_tag(db, get_owned_tag(db, tag_id, current_user))
    return {"ok": True}


@router.get("/{tag_id}/log-entries", response_model=List[schemas.LogEntryWithRelations])
def list_tagged_log_entries(
    tag_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List the log entries carrying a tag, newest first."""
    tag = get_owned_tag(db, tag_id, current_user)
    return enrich_log_entries(
        db, crud.get_log_entries_by_tag(db, tag.id, current_user.id)
    )
