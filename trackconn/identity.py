"""Identity resolution for new log entries.

When a log entry is recorded, its name, email and phone decide which
contact it belongs to. An explicit ``contact_id`` wins outright;
otherwise the user's contacts are searched by email, then by phone,
and a new contact is created when nothing matches.

Linking is best effort. A store failure while resolving is logged and
the entry is saved without a contact: losing the link is acceptable,
losing the entry is not.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models, schemas

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("name", "email", "phone")
CONTACT_FIELDS = ("name", "email", "phone", "company", "title", "notes", "where_met")
ENTRY_FIELDS = CONTACT_FIELDS + ("is_favorite",)


def find_matching_contact(
    db: Session, user_id: int, email: str | None, phone: str | None
) -> models.Contact | None:
    """
    Find the user's contact for an email or phone.

    Email is tried before phone. When several contacts match, the most
    recently updated one is returned.

    Args:
        db (Session): Database session.
        user_id (int): Owner whose contacts are searched.
        email (str | None): Exact email to match.
        phone (str | None): Exact phone to match.

    Returns:
        Contact | None: The matching contact, if any.
    """
    if email:
        matches = crud.find_contacts_by_email(db, user_id, email)
        if matches:
            if len(matches) > 1:
                logger.warning(
                    "user %s has %d contacts with the same email, using contact %s",
                    user_id,
                    len(matches),
                    matches[0].id,
                )
            return matches[0]
    if phone:
        matches = crud.find_contacts_by_phone(db, user_id, phone)
        if matches:
            if len(matches) > 1:
                logger.warning(
                    "user %s has %d contacts with the same phone, using contact %s",
                    user_id,
                    len(matches),
                    matches[0].id,
                )
            return matches[0]
    return None


def get_or_create_contact(db: Session, user_id: int, fields: dict) -> models.Contact:
    """
    Return the user's contact for ``fields``, creating it if needed.

    The insert relies on the ``(created_by, email)`` unique constraint:
    when a concurrent request created the same contact first, the
    insert fails and the existing row is returned instead.

    Args:
        db (Session): Database session with no pending changes.
        user_id (int): Owner of the contact.
        fields (dict): Submitted contact attributes.

    Returns:
        Contact: Existing or newly created contact.
    """
    email = fields.get("email")
    phone = fields.get("phone")
    existing = find_matching_contact(db, user_id, email, phone)
    if existing:
        return existing

    contact = models.Contact(
        **{key: fields.get(key) for key in CONTACT_FIELDS},
        is_favorite=False,
        created_by=user_id,
    )
    db.add(contact)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_matching_contact(db, user_id, email, phone)
        if existing is None:
            raise
        return existing
    db.refresh(contact)
    logger.info("created contact %s for user %s", contact.id, user_id)
    return contact


def resolve_contact_id(
    db: Session, user_id: int, fields: dict, contact_id: int | None = None
) -> int | None:
    """
    Decide which contact a new log entry belongs to.

    Args:
        db (Session): Database session with no pending changes.
        user_id (int): Owner of the log entry.
        fields (dict): Submitted identity and note fields.
        contact_id (int | None): Explicit contact link, used verbatim.

    Returns:
        int | None: Contact id, or ``None`` for an anonymous entry or
        when resolution failed.
    """
    if contact_id is not None:
        return contact_id
    if not any(fields.get(key) for key in IDENTITY_FIELDS):
        return None

    try:
        return get_or_create_contact(db, user_id, fields).id
    except SQLAlchemyError:
        logger.exception("contact resolution failed for user %s", user_id)
        db.rollback()
        return None


def create_log_entry(
    db: Session, user_id: int, entry_in: schemas.LogEntryCreate
) -> models.LogEntry:
    """
    Record a log entry, linking it to a contact first.

    Tags the user does not own are ignored, as is media that is not
    the user's or is already attached elsewhere.

    Args:
        db (Session): Database session.
        user_id (int): Owner of the log entry.
        entry_in (LogEntryCreate): Submitted entry.

    Returns:
        LogEntry: The stored entry.
    """
    fields = entry_in.model_dump(include=set(ENTRY_FIELDS))
    contact_id = resolve_contact_id(db, user_id, fields, entry_in.contact_id)

    entry = crud.add_log_entry(db, user_id, fields, contact_id)
    crud.attach_tags(db, entry, entry_in.tag_ids)
    crud.claim_media(db, entry, entry_in.media_ids)
    db.commit()
    db.refresh(entry)
    return entry
