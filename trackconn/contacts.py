"""Contact routes for the TrackConnections API.

Stored contacts are addressed by integer id. Virtual contacts, derived
from log entries without a contact, are addressed by their email or
phone and live under ``/contacts/virtual``.
"""

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi_mail import FastMail, MessageSchema
from sqlalchemy.orm import Session

from . import aggregation, crud, schemas
from .auth import get_current_user
from .core import get_mail_config
from .database import get_db
from .enrichment import enrich_contact
from .models import Contact, User
from .templates import effective_templates, render_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contacts", tags=["contacts"])


def get_owned_contact(db: Session, contact_id: int, user: User) -> Contact:
    """Load a contact of the user or answer 404."""
    contact = crud.get_contact(db, contact_id, user.id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


@router.post("/", response_model=schemas.ContactOut, status_code=201)
def create_contact(
    contact_in: schemas.ContactCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Create a new contact owned by the current user.

    Args:
        contact_in (ContactCreate): Contact input data.
        db (Session): Database session.
        current_user (User): Authenticated user.

    Raises:
        HTTPException: If a contact with the same email exists.

    Returns:
        ContactOut: Created contact.
    """
    return crud.create_contact(db, contact_in, current_user.id)


@router.get("/", response_model=List[schemas.ContactOut])
def list_contacts(
    q: str | None = Query(None),
    favorites: bool = False,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Retrieve the stored contacts of the current user, ordered by name.

    Args:
        q (str | None): Optional search over name, email, company, phone.
        favorites (bool): Only return favorite contacts.
        skip (int): Number of records to skip.
        limit (int): Maximum number of records to return.
        db (Session): Database session.
        current_user (User): Authenticated user.

    Returns:
        list[ContactOut]: List of contacts.
    """
    return crud.get_contacts(
        db,
        current_user.id,
        skip=skip,
        limit=limit,
        q=q,
        favorites_only=favorites,
    )


@router.get("/virtual", response_model=List[schemas.VirtualContact])
def list_virtual_contacts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Derive contacts from log entries that are not linked to a contact.

    Entries are grouped by email, or by phone when there is no email.
    Each virtual contact's id is that email or phone.
    """
    return aggregation.list_virtual_contacts(db, current_user.id)


@router.get("/virtual/{key}", response_model=schemas.VirtualContact)
def get_virtual_contact(
    key: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Retrieve one virtual contact by its email or phone."""
    contact = aggregation.get_virtual_contact(db, current_user.id, key)
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


@router.post(
    "/virtual/promote",
    response_model=schemas.ContactWithRelations,
    status_code=201,
)
def promote_virtual_contact(
    payload: schemas.VirtualContactPromote,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Store a virtual contact and link its log entries to it.

    Args:
        payload (VirtualContactPromote): Key of the virtual contact.
        db (Session): Database session.
        current_user (User): Authenticated user.

    Raises:
        HTTPException: If no virtual contact has that key.

    Returns:
        ContactWithRelations: The stored contact with its log entries.
    """
    contact = aggregation.promote_virtual_contact(db, current_user.id, payload.key)
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return enrich_contact(db, contact)


@router.get("/directory", response_model=List[schemas.ContactView])
def contact_directory(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Stored and virtual contacts together, told apart by ``kind``."""
    return aggregation.list_contact_directory(db, current_user.id)


@router.get("/{contact_id}", response_model=schemas.ContactWithRelations)
def get_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Retrieve a contact with its log entries, newest first.

    Raises:
        HTTPException: If contact is not found.
    """
    return enrich_contact(db, get_owned_contact(db, contact_id, current_user))


@router.patch("/{contact_id}", response_model=schemas.ContactOut)
def patch_contact(
    contact_id: int,
    changes: schemas.ContactUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Partially update an existing contact.

    Only fields provided in the request will be updated.

    Raises:
        HTTPException: If contact is not found or the email is taken.
    """
    contact = get_owned_contact(db, contact_id, current_user)
    data = changes.model_dump(exclude_unset=True)
    if data.get("is_favorite") is None:
        data.pop("is_favorite", None)
    return crud.update_contact(db, contact, data)


@router.delete("/{contact_id}")
def remove_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Delete a contact owned by the current user.

    Its log entries are kept and still reference the deleted id.

    Returns:
        dict: Deletion status.
    """
    crud.delete_contact(db, get_owned_contact(db, contact_id, current_user))
    return {"ok": True}


@router.put("/{contact_id}/favorite", response_model=schemas.ContactOut)
def set_favorite(
    contact_id: int,
    payload: schemas.FavoriteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark or unmark a contact as favorite."""
    contact = get_owned_contact(db, contact_id, current_user)
    return crud.set_contact_favorite(db, contact, payload.is_favorite)


def build_follow_up(
    db: Session, contact: Contact, user: User
) -> schemas.FollowUpPreview:
    """Render the user's follow-up templates for a contact."""
    templates = effective_templates(db, user.id)
    return schemas.FollowUpPreview(
        recipient_email=contact.email,
        recipient_phone=contact.phone,
        email_body=render_message(templates.email_template, contact.name, user.name),
        sms_body=render_message(templates.sms_template, contact.name, user.name),
    )


@router.get("/{contact_id}/follow-up", response_model=schemas.FollowUpPreview)
def preview_follow_up(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Render the follow-up email and SMS for a contact."""
    contact = get_owned_contact(db, contact_id, current_user)
    return build_follow_up(db, contact, current_user)


async def send_follow_up_email_task(email: str, subject: str, body: str):
    """
    Send a follow-up email.

    Args:
        email (str): Recipient email address.
        subject (str): Email subject.
        body (str): Rendered message text.
    """
    message = MessageSchema(
        subject=subject,
        recipients=[email],
        body=body,
        subtype="plain",
    )
    fm = FastMail(get_mail_config())
    try:
        await fm.send_message(message)
    except Exception:
        logger.exception("sending follow-up email failed")


@router.post("/{contact_id}/follow-up", status_code=status.HTTP_202_ACCEPTED)
def send_follow_up(
    contact_id: int,
    payload: schemas.FollowUpRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Email the rendered follow-up message to a contact.

    Raises:
        HTTPException: If the contact is not found or has no email.

    Returns:
        dict: Confirmation that the email was queued.
    """
    contact = get_owned_contact(db, contact_id, current_user)
    if not contact.email:
        raise HTTPException(status_code=400, detail="Contact has no email")
    follow_up = build_follow_up(db, contact, current_user)
    background_tasks.add_task(
        send_follow_up_email_task, contact.email, payload.subject, follow_up.email_body
    )
    return {"message": "Follow-up email queued"}
