"""Database models for the TrackConnections API.

Every row belongs, directly or through its log entry, to exactly one
user. References from log entries to contacts and from media to log
entries are weak: the referenced row may disappear while the
referencing row survives.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """
    SQLAlchemy model representing an application user.

    A user owns contacts, log entries, tags, media and a single
    message template.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    contacts = relationship("Contact", back_populates="owner", cascade="all, delete")


class Contact(Base):
    """
    A deduplicated person record.

    Contacts are created explicitly through the API or implicitly when
    a new log entry carries identity fields that match no existing
    contact. Email is unique per owner; phone is not.
    """

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("created_by", "email", name="uq_contact_owner_email"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True, index=True)
    company = Column(String(255), nullable=True)
    title = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    where_met = Column(String(255), nullable=True)
    is_favorite = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    #: Identifier of the owning user
    created_by = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    owner = relationship("User", back_populates="contacts")


class LogEntry(Base):
    """
    A record of one interaction with a person.

    The identity fields mirror :class:`Contact`. ``contact_id`` is a
    plain column rather than a foreign key: deleting a contact leaves
    its log entries pointing at an id that no longer resolves.
    """

    __tablename__ = "log_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_id = Column(Integer, nullable=True, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True, index=True)
    company = Column(String(255), nullable=True)
    title = Column(String(255), nullable=True)
    where_met = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    is_favorite = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Tag(Base):
    """A user-scoped label attached to log entries."""

    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tag_owner_name"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class LogEntryTag(Base):
    """Join row between a log entry and a tag, unique per pair."""

    __tablename__ = "log_entry_tags"
    __table_args__ = (
        UniqueConstraint("log_entry_id", "tag_id", name="uq_log_entry_tag"),
    )

    id = Column(Integer, primary_key=True, index=True)
    log_entry_id = Column(
        Integer,
        ForeignKey("log_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tag_id = Column(
        Integer,
        ForeignKey("tags.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Media(Base):
    """
    A reference to a blob held by the blob store.

    ``log_entry_id`` is null while the media is unassigned, i.e.
    uploaded before the log entry that will claim it exists.
    """

    __tablename__ = "media"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    log_entry_id = Column(
        Integer,
        ForeignKey("log_entries.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    url = Column(String(1000), nullable=False)
    storage_key = Column(String(500), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class MessageTemplate(Base):
    """Follow-up message templates, one row per user."""

    __tablename__ = "message_templates"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    email_template = Column(Text, nullable=True)
    sms_template = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
