"""Virtual contacts derived from unlinked log entries.

Log entries recorded before contacts were stored explicitly, or whose
contact has since been deleted, are grouped by email (or phone when
there is no email). Each group becomes a :class:`~trackconn.schemas.VirtualContact`
whose id is the grouping key and whose identity comes from the newest
entry. The view is recomputed on every call and never persisted.

Virtual ids are raw emails or phone numbers, not stored identifiers,
so operations that need a stable id go through
:func:`promote_virtual_contact` first.
"""

import locale
import logging
import unicodedata

from sqlalchemy.orm import Session

from . import crud, enrichment, identity, models, schemas

logger = logging.getLogger(__name__)


def grouping_key(entry: models.LogEntry) -> str | None:
    """Email if present, else phone, else ``None``."""
    return entry.email or entry.phone or None


def _fold_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def name_sort_key(name: str | None) -> tuple[str, str]:
    """
    Case- and accent-insensitive collation key; empty names first.

    Names are compared on their base letters first ("Émile" sorts with
    "Emile", before "Zed"), then by the process locale's collation.
    """
    text = (name or "").casefold()
    return _fold_accents(text), locale.strxfrm(text)


def _group_unlinked_entries(
    db: Session, user_id: int
) -> dict[str, list[models.LogEntry]]:
    buckets: dict[str, list[models.LogEntry]] = {}
    for entry in crud.get_unlinked_log_entries(db, user_id):
        key = grouping_key(entry)
        if key is None:
            continue
        buckets.setdefault(key, []).append(entry)
    for entries in buckets.values():
        entries.sort(key=lambda e: (e.created_at, e.id), reverse=True)
    return buckets


def _build_virtual_contact(
    db: Session, key: str, entries: list[models.LogEntry]
) -> schemas.VirtualContact:
    log_entries = enrichment.enrich_log_entries(db, entries, include_contact=False)
    newest = entries[0]

    tags: dict[int, schemas.TagOut] = {}
    for view in log_entries:
        for tag in view.tags:
            tags.setdefault(tag.id, tag)

    return schemas.VirtualContact(
        id=key,
        name=newest.name,
        company=newest.company,
        title=newest.title,
        email=newest.email,
        phone=newest.phone,
        tags=sorted(tags.values(), key=lambda t: (name_sort_key(t.name), t.id)),
        log_entries=log_entries,
    )


def list_virtual_contacts(db: Session, user_id: int) -> list[schemas.VirtualContact]:
    """
    Derive the virtual contacts of a user.

    Args:
        db (Session): Database session.
        user_id (int): Owner whose log entries are grouped.

    Returns:
        list[VirtualContact]: One per grouping key, sorted by name with
        empty names first.
    """
    contacts = [
        _build_virtual_contact(db, key, entries)
        for key, entries in _group_unlinked_entries(db, user_id).items()
    ]
    contacts.sort(key=lambda c: (name_sort_key(c.name), c.id))
    return contacts


def get_virtual_contact(
    db: Session, user_id: int, key: str
) -> schemas.VirtualContact | None:
    """Derive a single virtual contact by its grouping key."""
    entries = _group_unlinked_entries(db, user_id).get(key)
    if not entries:
        return None
    return _build_virtual_contact(db, key, entries)


def promote_virtual_contact(
    db: Session, user_id: int, key: str
) -> models.Contact | None:
    """
    Turn a virtual contact into a stored one.

    The contact is found or created from the newest entry's identity,
    then every entry of the group is linked to it. Afterwards the key
    no longer appears among the user's virtual contacts.

    Args:
        db (Session): Database session.
        user_id (int): Owner of the entries.
        key (str): Grouping key of the virtual contact.

    Returns:
        Contact | None: The stored contact, or ``None`` when no virtual
        contact has this key.
    """
    entries = _group_unlinked_entries(db, user_id).get(key)
    if not entries:
        return None

    newest = entries[0]
    fields = {name: getattr(newest, name) for name in identity.CONTACT_FIELDS}
    contact = identity.get_or_create_contact(db, user_id, fields)
    crud.link_log_entries(db, entries, contact.id)
    logger.info(
        "promoted virtual contact to contact %s, linked %d log entries",
        contact.id,
        len(entries),
    )
    db.refresh(contact)
    return contact


def list_contact_directory(db: Session, user_id: int) -> list[schemas.ContactView]:
    """
    Real and virtual contacts of a user in one list.

    Real contacts come first, each group sorted by name. Items carry a
    ``kind`` discriminator so callers can tell the two apart.
    """
    real = sorted(
        crud.get_contacts(db, user_id, limit=None),
        key=lambda c: (name_sort_key(c.name), c.id),
    )
    directory: list[schemas.ContactView] = [
        schemas.RealContact.model_validate(contact) for contact in real
    ]
    directory.extend(list_virtual_contacts(db, user_id))
    return directory
