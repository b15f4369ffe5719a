"""Attach related tags, media and contacts to log entries and contacts.

Each relation is loaded on its own through :func:`load_relation`. A
relation that cannot be loaded falls back to an empty list or ``None``
and is logged; the entity itself is always returned. Missing rows are
not errors: a deleted tag or contact simply does not appear.
"""

import logging
from typing import Callable, Iterable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models, schemas

logger = logging.getLogger(__name__)

T = TypeVar("T")


def load_relation(relation: str, owner: str, loader: Callable[[], T], fallback: T) -> T:
    """
    Run one relation lookup, degrading to ``fallback`` on store errors.

    Args:
        relation (str): Relation name, for logging.
        owner (str): Entity being enriched, for logging.
        loader (Callable): Performs the lookup.
        fallback: Value used when the lookup fails.

    Returns:
        The loaded value or ``fallback``.
    """
    try:
        return loader()
    except SQLAlchemyError:
        logger.warning(
            "could not load %s for %s, returning it empty",
            relation,
            owner,
            exc_info=True,
        )
        return fallback


def _load_tags(db: Session, entry: models.LogEntry) -> list[schemas.TagOut]:
    tag_ids = crud.get_tag_ids_for_log_entry(db, entry.id)
    found = crud.get_tags_by_ids(db, tag_ids)
    # links to deleted tags are skipped
    return [
        schemas.TagOut.model_validate(found[tag_id])
        for tag_id in tag_ids
        if tag_id in found
    ]


def _load_media(db: Session, entry: models.LogEntry) -> list[schemas.MediaOut]:
    media = crud.get_media_for_log_entry(db, entry.id)
    return [schemas.MediaOut.model_validate(item) for item in media]


def _load_contact(db: Session, entry: models.LogEntry) -> schemas.ContactOut | None:
    if entry.contact_id is None:
        return None
    contact = crud.get_contact(db, entry.contact_id, entry.user_id)
    return schemas.ContactOut.model_validate(contact) if contact else None


def enrich_log_entry(
    db: Session, entry: models.LogEntry, include_contact: bool = True
) -> schemas.LogEntryWithRelations:
    """
    Build the API view of a log entry with its relations.

    Args:
        db (Session): Database session.
        entry (LogEntry): Entry to enrich.
        include_contact (bool): Whether to resolve the linked contact.

    Returns:
        LogEntryWithRelations: Entry with tags, media (oldest first)
        and contact.
    """
    label = f"log entry {entry.id}"
    view = schemas.LogEntryWithRelations.model_validate(entry)
    view.tags = load_relation("tags", label, lambda: _load_tags(db, entry), [])
    view.media = load_relation("media", label, lambda: _load_media(db, entry), [])
    if include_contact:
        view.contact = load_relation(
            "contact", label, lambda: _load_contact(db, entry), None
        )
    return view


def enrich_log_entries(
    db: Session, entries: Iterable[models.LogEntry], include_contact: bool = True
) -> list[schemas.LogEntryWithRelations]:
    """Enrich several log entries, keeping their order."""
    return [enrich_log_entry(db, entry, include_contact) for entry in entries]


def enrich_contact(
    db: Session, contact: models.Contact
) -> schemas.ContactWithRelations:
    """
    Build the API view of a contact with its log entries.

    The entries are newest first and carry their tags and media but not
    their contact, which is the one being enriched.

    Args:
        db (Session): Database session.
        contact (Contact): Contact to enrich.

    Returns:
        ContactWithRelations: Contact with its log entries.
    """
    view = schemas.ContactWithRelations.model_validate(contact)
    view.log_entries = load_relation(
        "log entries",
        f"contact {contact.id}",
        lambda: enrich_log_entries(
            db,
            crud.get_log_entries_for_contact(db, contact.id, contact.created_by),
            include_contact=False,
        ),
        [],
    )
    return view
