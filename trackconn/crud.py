"""CRUD operations for the TrackConnections record store.

This module contains the database interaction logic for users,
contacts, log entries, tags, media and message templates, isolated
from FastAPI route handlers. Every query that returns user data is
scoped by the owning user's id.
"""

from typing import Iterable

from fastapi import HTTPException, status
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas


def create_user(
    db: Session, user_in: schemas.UserCreate, hashed_password: str
) -> models.User:
    """
    Create and persist a new user.

    Args:
        db (Session): SQLAlchemy database session.
        user_in (UserCreate): Incoming user data.
        hashed_password (str): Securely hashed password.

    Raises:
        HTTPException: If a user with the same email already exists.

    Returns:
        User: Newly created user instance.
    """
    email = user_in.email.lower()
    if get_user_by_email(db, email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists",
        )

    user = models.User(email=email, name=user_in.name, hashed_password=hashed_password)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user_by_email(db: Session, email: str) -> models.User | None:
    """
    Retrieve a user by email address (case-insensitive).

    Args:
        db (Session): Database session.
        email (str): User email.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.execute(
        select(models.User).where(models.User.email == email.lower())
    ).scalar_one_or_none()


def get_user_by_id(db: Session, user_id: int) -> models.User | None:
    """Retrieve a user by primary key."""
    return db.get(models.User, user_id)


def update_user(db: Session, user: models.User, changes: dict) -> models.User:
    """
    Update profile fields of a user.

    The user may come from the token cache and be detached from the
    session, so the stored row is loaded before it is changed.

    Args:
        db (Session): Database session.
        user (User): Target user.
        changes (dict): Fields to update.

    Returns:
        User: Updated user instance.
    """
    target = get_user_by_id(db, user.id) or user
    for key, value in changes.items():
        setattr(target, key, value)
    db.add(target)
    db.commit()
    db.refresh(target)
    return target


# Contacts


def create_contact(
    db: Session, contact_in: schemas.ContactCreate, user_id: int
) -> models.Contact:
    """
    Create a new contact owned by the given user.

    Args:
        db (Session): Database session.
        contact_in (ContactCreate): Contact data.
        user_id (int): Owner of the contact.

    Raises:
        HTTPException: If the owner already has a contact with that email.

    Returns:
        Contact: Newly created contact.
    """
    if contact_in.email and find_contacts_by_email(db, user_id, contact_in.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Contact already exists",
        )

    contact = models.Contact(**contact_in.model_dump(), created_by=user_id)
    db.add(contact)
    _commit_or_conflict(db, "Contact already exists")
    db.refresh(contact)
    return contact


def get_contact(db: Session, contact_id: int, user_id: int) -> models.Contact | None:
    """
    Retrieve a single contact owned by the given user.

    Args:
        db (Session): Database session.
        contact_id (int): Contact identifier.
        user_id (int): Contact owner.

    Returns:
        Contact | None: Contact if found, otherwise ``None``.
    """
    return db.execute(
        select(models.Contact).where(
            models.Contact.id == contact_id,
            models.Contact.created_by == user_id,
        )
    ).scalar_one_or_none()


def get_contacts(
    db: Session,
    user_id: int,
    skip: int = 0,
    limit: int | None = 100,
    q: str | None = None,
    favorites_only: bool = False,
) -> list[models.Contact]:
    """
    Retrieve contacts of the given user, ordered by name.

    Supports optional case-insensitive search by name, email,
    company or phone.

    Args:
        db (Session): Database session.
        user_id (int): Contact owner.
        skip (int): Number of records to skip.
        limit (int | None): Maximum number of records, ``None`` for all.
        q (str | None): Optional search query.
        favorites_only (bool): Only return favorite contacts.

    Returns:
        list[Contact]: List of contacts.
    """
    stmt = select(models.Contact).where(models.Contact.created_by == user_id)

    if q:
        like_q = f"%{q}%"
        stmt = stmt.where(
            or_(
                models.Contact.name.ilike(like_q),
                models.Contact.email.ilike(like_q),
                models.Contact.company.ilike(like_q),
                models.Contact.phone.ilike(like_q),
            )
        )
    if favorites_only:
        stmt = stmt.where(models.Contact.is_favorite.is_(True))

    stmt = stmt.order_by(models.Contact.name, models.Contact.id)
    return list(db.scalars(stmt.offset(skip).limit(limit)).all())


def find_contacts_by_email(
    db: Session, user_id: int, email: str
) -> list[models.Contact]:
    """Contacts of a user with exactly this email, most recently updated first."""
    return list(
        db.scalars(
            select(models.Contact)
            .where(models.Contact.created_by == user_id, models.Contact.email == email)
            .order_by(models.Contact.updated_at.desc(), models.Contact.id.desc())
        ).all()
    )


def find_contacts_by_phone(
    db: Session, user_id: int, phone: str
) -> list[models.Contact]:
    """Contacts of a user with exactly this phone, most recently updated first."""
    return list(
        db.scalars(
            select(models.Contact)
            .where(models.Contact.created_by == user_id, models.Contact.phone == phone)
            .order_by(models.Contact.updated_at.desc(), models.Contact.id.desc())
        ).all()
    )


def update_contact(
    db: Session, contact: models.Contact, changes: dict
) -> models.Contact:
    """
    Update mutable fields of a contact.

    Args:
        db (Session): Database session.
        contact (Contact): Contact instance.
        changes (dict): Fields to update.

    Raises:
        HTTPException: If the new email clashes with another contact.

    Returns:
        Contact: Updated contact.
    """
    for key, value in changes.items():
        setattr(contact, key, value)

    db.add(contact)
    _commit_or_conflict(db, "Contact already exists")
    db.refresh(contact)
    return contact


def set_contact_favorite(
    db: Session, contact: models.Contact, is_favorite: bool
) -> models.Contact:
    """Set the favorite flag of a contact."""
    return update_contact(db, contact, {"is_favorite": is_favorite})


def delete_contact(db: Session, contact: models.Contact) -> None:
    """
    Delete a contact.

    Log entries that reference the contact keep their ``contact_id``.

    Args:
        db (Session): Database session.
        contact (Contact): Contact to delete.
    """
    db.delete(contact)
    db.commit()


# Log entries


def get_log_entry(db: Session, entry_id: int, user_id: int) -> models.LogEntry | None:
    """Retrieve a single log entry owned by the given user."""
    return db.execute(
        select(models.LogEntry).where(
            models.LogEntry.id == entry_id,
            models.LogEntry.user_id == user_id,
        )
    ).scalar_one_or_none()


def get_log_entries(db: Session, user_id: int) -> list[models.LogEntry]:
    """All log entries of a user, oldest first."""
    return list(
        db.scalars(
            select(models.LogEntry)
            .where(models.LogEntry.user_id == user_id)
            .order_by(models.LogEntry.created_at, models.LogEntry.id)
        ).all()
    )


def get_unlinked_log_entries(db: Session, user_id: int) -> list[models.LogEntry]:
    """
    Log entries of a user that are not linked to an existing contact.

    An entry whose ``contact_id`` points at a deleted contact counts as
    unlinked.

    Args:
        db (Session): Database session.
        user_id (int): Entry owner.

    Returns:
        list[LogEntry]: Unlinked entries, oldest first.
    """
    stmt = (
        select(models.LogEntry)
        .outerjoin(
            models.Contact,
            (models.LogEntry.contact_id == models.Contact.id)
            & (models.Contact.created_by == models.LogEntry.user_id),
        )
        .where(models.LogEntry.user_id == user_id, models.Contact.id.is_(None))
        .order_by(models.LogEntry.created_at, models.LogEntry.id)
    )
    return list(db.scalars(stmt).all())


def get_log_entries_for_contact(
    db: Session, contact_id: int, user_id: int
) -> list[models.LogEntry]:
    """Log entries linked to a contact, newest first."""
    return list(
        db.scalars(
            select(models.LogEntry)
            .where(
                models.LogEntry.contact_id == contact_id,
                models.LogEntry.user_id == user_id,
            )
            .order_by(models.LogEntry.created_at.desc(), models.LogEntry.id.desc())
        ).all()
    )


def get_favorite_log_entries(db: Session, user_id: int) -> list[models.LogEntry]:
    """Favorite log entries of a user, oldest first."""
    return list(
        db.scalars(
            select(models.LogEntry)
            .where(
                models.LogEntry.user_id == user_id,
                models.LogEntry.is_favorite.is_(True),
            )
            .order_by(models.LogEntry.created_at, models.LogEntry.id)
        ).all()
    )


def search_log_entries(db: Session, user_id: int, q: str) -> list[models.LogEntry]:
    """
    Case-insensitive substring search over a user's log entries.

    Matches name, email, company, title, notes and where-met.

    Args:
        db (Session): Database session.
        user_id (int): Entry owner.
        q (str): Search text.

    Returns:
        list[LogEntry]: Matching entries, oldest first.
    """
    like_q = f"%{q}%"
    stmt = (
        select(models.LogEntry)
        .where(
            models.LogEntry.user_id == user_id,
            or_(
                models.LogEntry.name.ilike(like_q),
                models.LogEntry.email.ilike(like_q),
                models.LogEntry.company.ilike(like_q),
                models.LogEntry.title.ilike(like_q),
                models.LogEntry.notes.ilike(like_q),
                models.LogEntry.where_met.ilike(like_q),
            ),
        )
        .order_by(models.LogEntry.created_at, models.LogEntry.id)
    )
    return list(db.scalars(stmt).all())


def get_log_entries_by_tag(
    db: Session, tag_id: int, user_id: int
) -> list[models.LogEntry]:
    """Log entries of a user carrying the given tag, newest first."""
    stmt = (
        select(models.LogEntry)
        .join(models.LogEntryTag, models.LogEntryTag.log_entry_id == models.LogEntry.id)
        .where(models.LogEntryTag.tag_id == tag_id, models.LogEntry.user_id == user_id)
        .order_by(models.LogEntry.created_at.desc(), models.LogEntry.id.desc())
    )
    return list(db.scalars(stmt).all())


def add_log_entry(
    db: Session, user_id: int, fields: dict, contact_id: int | None
) -> models.LogEntry:
    """
    Stage a new log entry in the session and flush it to obtain its id.

    The caller commits once tags and media are attached.
    """
    entry = models.LogEntry(**fields, user_id=user_id, contact_id=contact_id)
    db.add(entry)
    db.flush()
    return entry


def update_log_entry(
    db: Session,
    entry: models.LogEntry,
    changes: dict,
    tag_ids: list[int] | None = None,
) -> models.LogEntry:
    """
    Update mutable fields of a log entry.

    Args:
        db (Session): Database session.
        entry (LogEntry): Entry to update.
        changes (dict): Fields to update.
        tag_ids (list[int] | None): When given, replaces the entry's tags.

    Returns:
        LogEntry: Updated entry.
    """
    for key, value in changes.items():
        setattr(entry, key, value)
    db.add(entry)
    if tag_ids is not None:
        replace_log_entry_tags(db, entry, tag_ids)
    db.commit()
    db.refresh(entry)
    return entry


def set_log_entry_favorite(
    db: Session, entry: models.LogEntry, is_favorite: bool
) -> models.LogEntry:
    """Set the favorite flag of a log entry."""
    return update_log_entry(db, entry, {"is_favorite": is_favorite})


def link_log_entries(
    db: Session, entries: Iterable[models.LogEntry], contact_id: int
) -> None:
    """Point every given entry at one contact."""
    for entry in entries:
        entry.contact_id = contact_id
        db.add(entry)
    db.commit()


def delete_log_entry(db: Session, entry: models.LogEntry) -> list[str]:
    """
    Delete a log entry together with its tag links and media rows.

    Args:
        db (Session): Database session.
        entry (LogEntry): Entry to delete.

    Returns:
        list[str]: Storage keys of the deleted media, for blob cleanup.
    """
    media = get_media_for_log_entry(db, entry.id)
    storage_keys = [item.storage_key for item in media]
    for item in media:
        db.delete(item)
    db.execute(
        delete(models.LogEntryTag).where(models.LogEntryTag.log_entry_id == entry.id)
    )
    db.delete(entry)
    db.commit()
    return storage_keys


# Tags


def get_tags(db: Session, user_id: int) -> list[models.Tag]:
    """All tags of a user, ordered by name."""
    return list(
        db.scalars(
            select(models.Tag)
            .where(models.Tag.user_id == user_id)
            .order_by(models.Tag.name, models.Tag.id)
        ).all()
    )


def get_tag(db: Session, tag_id: int, user_id: int) -> models.Tag | None:
    """Retrieve a single tag owned by the given user."""
    return db.execute(
        select(models.Tag).where(models.Tag.id == tag_id, models.Tag.user_id == user_id)
    ).scalar_one_or_none()


def get_tags_by_ids(db: Session, tag_ids: list[int]) -> dict[int, models.Tag]:
    """Existing tags among ``tag_ids``, keyed by id."""
    if not tag_ids:
        return {}
    tags = db.scalars(select(models.Tag).where(models.Tag.id.in_(tag_ids))).all()
    return {tag.id: tag for tag in tags}


def get_tag_ids_for_log_entry(db: Session, log_entry_id: int) -> list[int]:
    """Tag ids linked to a log entry, in the order they were added."""
    return list(
        db.scalars(
            select(models.LogEntryTag.tag_id)
            .where(models.LogEntryTag.log_entry_id == log_entry_id)
            .order_by(models.LogEntryTag.created_at, models.LogEntryTag.id)
        ).all()
    )


def filter_owned_tag_ids(
    db: Session, user_id: int, tag_ids: Iterable[int]
) -> list[int]:
    """Keep the ids of tags the user owns, deduplicated, in input order."""
    wanted = list(dict.fromkeys(tag_ids))
    if not wanted:
        return []
    owned = set(
        db.scalars(
            select(models.Tag.id).where(
                models.Tag.user_id == user_id, models.Tag.id.in_(wanted)
            )
        ).all()
    )
    return [tag_id for tag_id in wanted if tag_id in owned]


def create_tag(db: Session, tag_in: schemas.TagCreate, user_id: int) -> models.Tag:
    """
    Create a tag for the given user.

    Raises:
        HTTPException: If the user already has a tag with that name.
    """
    existing = db.execute(
        select(models.Tag).where(
            models.Tag.user_id == user_id, models.Tag.name == tag_in.name
        )
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Tag already exists",
        )

    tag = models.Tag(**tag_in.model_dump(), user_id=user_id)
    db.add(tag)
    _commit_or_conflict(db, "Tag already exists")
    db.refresh(tag)
    return tag


def delete_tag(db: Session, tag: models.Tag) -> None:
    """Delete a tag and every link to it."""
    db.execute(delete(models.LogEntryTag).where(models.LogEntryTag.tag_id == tag.id))
    db.delete(tag)
    db.commit()


def add_tag_to_log_entry(
    db: Session, log_entry_id: int, tag_id: int
) -> models.LogEntryTag:
    """
    Link a tag to a log entry.

    Adding a pair that already exists returns the existing link, so a
    pair is never stored twice.

    Args:
        db (Session): Database session.
        log_entry_id (int): Log entry identifier.
        tag_id (int): Tag identifier.

    Returns:
        LogEntryTag: The link for the pair.
    """
    existing = _get_tag_link(db, log_entry_id, tag_id)
    if existing:
        return existing

    link = models.LogEntryTag(log_entry_id=log_entry_id, tag_id=tag_id)
    db.add(link)
    try:
        db.commit()
    except IntegrityError:
        # concurrent insert of the same pair
        db.rollback()
        existing = _get_tag_link(db, log_entry_id, tag_id)
        if existing is None:
            raise
        return existing
    db.refresh(link)
    return link


def remove_tag_from_log_entry(db: Session, log_entry_id: int, tag_id: int) -> bool:
    """Unlink a tag from a log entry. Returns whether a link was removed."""
    result = db.execute(
        delete(models.LogEntryTag).where(
            models.LogEntryTag.log_entry_id == log_entry_id,
            models.LogEntryTag.tag_id == tag_id,
        )
    )
    db.commit()
    return result.rowcount > 0


def attach_tags(db: Session, entry: models.LogEntry, tag_ids: Iterable[int]) -> None:
    """Stage links from an entry to tags it does not carry yet. Does not commit."""
    current = set(get_tag_ids_for_log_entry(db, entry.id))
    for tag_id in filter_owned_tag_ids(db, entry.user_id, tag_ids):
        if tag_id not in current:
            db.add(models.LogEntryTag(log_entry_id=entry.id, tag_id=tag_id))
            current.add(tag_id)
    db.flush()


def replace_log_entry_tags(
    db: Session, entry: models.LogEntry, tag_ids: Iterable[int]
) -> None:
    """Stage replacing the entry's tag set with ``tag_ids``. Does not commit."""
    db.execute(
        delete(models.LogEntryTag).where(models.LogEntryTag.log_entry_id == entry.id)
    )
    attach_tags(db, entry, tag_ids)


def _get_tag_link(
    db: Session, log_entry_id: int, tag_id: int
) -> models.LogEntryTag | None:
    return db.execute(
        select(models.LogEntryTag).where(
            models.LogEntryTag.log_entry_id == log_entry_id,
            models.LogEntryTag.tag_id == tag_id,
        )
    ).scalar_one_or_none()


# Media


def create_media_items(
    db: Session,
    user_id: int,
    items: list[dict],
    log_entry_id: int | None = None,
) -> list[models.Media]:
    """
    Persist media rows for several stored blobs in one commit.

    Args:
        db (Session): Database session.
        user_id (int): Media owner.
        items (list[dict]): ``url``, ``storage_key``, ``file_type`` and
            ``file_size`` of each blob.
        log_entry_id (int | None): Log entry the media is attached to.

    Returns:
        list[Media]: Stored media, in input order.
    """
    rows = [
        models.Media(**item, user_id=user_id, log_entry_id=log_entry_id)
        for item in items
    ]
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    return rows


def get_media(db: Session, media_id: int, user_id: int) -> models.Media | None:
    """Retrieve a single media item owned by the given user."""
    return db.execute(
        select(models.Media).where(
            models.Media.id == media_id, models.Media.user_id == user_id
        )
    ).scalar_one_or_none()


def get_media_for_log_entry(db: Session, log_entry_id: int) -> list[models.Media]:
    """Media attached to a log entry, oldest first."""
    return list(
        db.scalars(
            select(models.Media)
            .where(models.Media.log_entry_id == log_entry_id)
            .order_by(models.Media.created_at, models.Media.id)
        ).all()
    )


def get_unassigned_media(db: Session, user_id: int) -> list[models.Media]:
    """Media of a user not yet attached to any log entry, oldest first."""
    return list(
        db.scalars(
            select(models.Media)
            .where(models.Media.user_id == user_id, models.Media.log_entry_id.is_(None))
            .order_by(models.Media.created_at, models.Media.id)
        ).all()
    )


def claim_media(
    db: Session, entry: models.LogEntry, media_ids: Iterable[int]
) -> None:
    """
    Stage attaching unassigned media to a log entry. Does not commit.

    Media owned by another user or already attached elsewhere is left
    untouched.
    """
    wanted = list(dict.fromkeys(media_ids))
    if not wanted:
        return
    items = db.scalars(
        select(models.Media).where(
            models.Media.id.in_(wanted),
            models.Media.user_id == entry.user_id,
            models.Media.log_entry_id.is_(None),
        )
    ).all()
    for item in items:
        item.log_entry_id = entry.id
        db.add(item)
    db.flush()


def assign_media(db: Session, item: models.Media, log_entry_id: int) -> models.Media:
    """Attach a media item to a log entry."""
    item.log_entry_id = log_entry_id
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def delete_media(db: Session, item: models.Media) -> None:
    """Delete a media row. The blob is removed by the caller."""
    db.delete(item)
    db.commit()


# Message templates


def get_message_template(db: Session, user_id: int) -> models.MessageTemplate | None:
    """Retrieve the saved message template of a user."""
    return db.execute(
        select(models.MessageTemplate).where(models.MessageTemplate.user_id == user_id)
    ).scalar_one_or_none()


def upsert_message_template(
    db: Session, user_id: int, template_in: schemas.MessageTemplateIn
) -> models.MessageTemplate:
    """
    Create or replace the message template of a user.

    Args:
        db (Session): Database session.
        user_id (int): Template owner.
        template_in (MessageTemplateIn): Template texts.

    Returns:
        MessageTemplate: Stored template.
    """
    template = get_message_template(db, user_id)
    if template is None:
        template = models.MessageTemplate(user_id=user_id)
    template.email_template = template_in.email_template
    template.sms_template = template_in.sms_template
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def _commit_or_conflict(db: Session, detail: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
