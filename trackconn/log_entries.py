"""Log entry routes for the TrackConnections API."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from . import blobs, crud, identity, schemas
from .auth import get_current_user
from .database import get_db
from .enrichment import enrich_log_entries, enrich_log_entry
from .models import LogEntry, User

router = APIRouter(prefix="/log-entries", tags=["log entries"])


def get_owned_entry(db: Session, entry_id: int, user: User) -> LogEntry:
    """Load a log entry of the user or answer 404."""
    entry = crud.get_log_entry(db, entry_id, user.id)
    if not entry:
        raise HTTPException(status_code=404, detail="Log entry not found")
    return entry


def ensure_contact_owned(db: Session, contact_id: int | None, user: User) -> None:
    """Answer 404 unless ``contact_id`` is empty or one of the user's contacts."""
    if contact_id is not None and not crud.get_contact(db, contact_id, user.id):
        raise HTTPException(status_code=404, detail="Contact not found")


@router.post("/", response_model=schemas.LogEntryWithRelations, status_code=201)
def create_log_entry(
    entry_in: schemas.LogEntryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Record an interaction.

    Without an explicit ``contact_id`` the entry is linked to the
    user's contact with the same email or phone, and a contact is
    created when none exists. Entry creation succeeds even when the
    contact cannot be resolved.

    Args:
        entry_in (LogEntryCreate): Entry data, tags and media to claim.
        db (Session): Database session.
        current_user (User): Authenticated user.

    Returns:
        LogEntryWithRelations: Created entry with its relations.
    """
    ensure_contact_owned(db, entry_in.contact_id, current_user)
    entry = identity.create_log_entry(db, current_user.id, entry_in)
    return enrich_log_entry(db, entry)


@router.get("/", response_model=List[schemas.LogEntryWithRelations])
def list_log_entries(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List the current user's log entries, oldest first."""
    return enrich_log_entries(db, crud.get_log_entries(db, current_user.id))


@router.get("/favorites", response_model=List[schemas.LogEntryWithRelations])
def list_favorite_log_entries(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List the current user's favorite log entries."""
    return enrich_log_entries(db, crud.get_favorite_log_entries(db, current_user.id))


@router.get("/search", response_model=List[schemas.LogEntryWithRelations])
def search_log_entries(
    q: str = Query(""),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Search log entries by name, email, company, title, notes or where met.

    Args:
        q (str): Search text.
        db (Session): Database session.
        current_user (User): Authenticated user.

    Raises:
        HTTPException: If the query is empty.

    Returns:
        list[LogEntryWithRelations]: Matching entries.
    """
    if not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")
    return enrich_log_entries(
        db, crud.search_log_entries(db, current_user.id, q.strip())
    )


@router.get("/{entry_id}", response_model=schemas.LogEntryWithRelations)
def get_log_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Retrieve one log entry with its tags, media and contact."""
    return enrich_log_entry(db, get_owned_entry(db, entry_id, current_user))


@router.put("/{entry_id}", response_model=schemas.LogEntryWithRelations)
def update_log_entry(
    entry_id: int,
    changes: schemas.LogEntryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Update a log entry.

    Only fields provided in the request are changed; ``tag_ids``, when
    provided, replaces the entry's tags.

    Args:
        entry_id (int): Log entry identifier.
        changes (LogEntryUpdate): Fields to update.
        db (Session): Database session.
        current_user (User): Authenticated user.

    Raises:
        HTTPException: If the entry or the new contact is not found.

    Returns:
        LogEntryWithRelations: Updated entry.
    """
    entry = get_owned_entry(db, entry_id, current_user)
    data = changes.model_dump(exclude_unset=True)
    tag_ids = data.pop("tag_ids", None)
    if data.get("is_favorite") is None:
        data.pop("is_favorite", None)
    ensure_contact_owned(db, data.get("contact_id"), current_user)
    entry = crud.update_log_entry(db, entry, data, tag_ids=tag_ids)
    return enrich_log_entry(db, entry)


@router.delete("/{entry_id}")
def delete_log_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Delete a log entry together with its media.

    Returns:
        dict: Deletion status.
    """
    entry = get_owned_entry(db, entry_id, current_user)
    blobs.discard_blobs(crud.delete_log_entry(db, entry))
    return {"ok": True}


@router.put("/{entry_id}/favorite", response_model=schemas.LogEntryWithRelations)
def set_favorite(
    entry_id: int,
    payload: schemas.FavoriteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark or unmark a log entry as favorite."""
    entry = get_owned_entry(db, entry_id, current_user)
    entry = crud.set_log_entry_favorite(db, entry, payload.is_favorite)
    return enrich_log_entry(db, entry)


@router.post("/{entry_id}/tags/{tag_id}", response_model=schemas.LogEntryWithRelations)
def add_tag(
    entry_id: int,
    tag_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Tag a log entry. Tagging twice with the same tag is a no-op."""
    entry = get_owned_entry(db, entry_id, current_user)
    if not crud.get_tag(db, tag_id, current_user.id):
        raise HTTPException(status_code=404, detail="Tag not found")
    crud.add_tag_to_log_entry(db, entry.id, tag_id)
    return enrich_log_entry(db, entry)


@router.delete(
    "/{entry_id}/tags/{tag_id}", response_model=schemas.LogEntryWithRelations
)
def remove_tag(
    entry_id: int,
    tag_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Remove a tag from a log entry."""
    entry = get_owned_entry(db, entry_id, current_user)
    crud.remove_tag_from_log_entry(db, entry.id, tag_id)
    return enrich_log_entry(db, entry)
