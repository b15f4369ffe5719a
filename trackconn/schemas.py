from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class IdentityFields(BaseModel):
    """Person attributes shared by contacts and log entries."""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None

    @field_validator("name", "email", "phone", "company", "title", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        # form fields arrive as "" when left empty
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class ContactBase(IdentityFields):
    """Shared fields for contact schemas."""

    notes: Optional[str] = None
    where_met: Optional[str] = None


class ContactCreate(ContactBase):
    """Schema for creating a new contact."""

    is_favorite: bool = False


class ContactUpdate(ContactBase):
    """Schema for updating a contact (all fields optional)."""

    is_favorite: Optional[bool] = None


class ContactOut(ContactBase):
    """Schema for returning a stored contact."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_by: int
    is_favorite: bool = False
    created_at: datetime
    updated_at: datetime


class TagCreate(BaseModel):
    """Payload for creating a tag."""

    name: str = Field(min_length=1, max_length=100)
    color: Optional[str] = None


class TagOut(TagCreate):
    """Response schema for a tag."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime


class MediaOut(BaseModel):
    """Response schema for a media item."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    log_entry_id: Optional[int] = None
    url: str
    file_type: str
    file_size: Optional[int] = None
    created_at: datetime


class MediaAssign(BaseModel):
    """Payload for attaching unassigned media to a log entry."""

    log_entry_id: int


class LogEntryBase(IdentityFields):
    """Shared fields for log entry schemas."""

    where_met: Optional[str] = None
    notes: Optional[str] = None


class LogEntryCreate(LogEntryBase):
    """Payload for recording a new interaction.

    ``contact_id`` links the entry to a known contact directly; when it
    is omitted the contact is resolved from the identity fields.
    ``media_ids`` claims media uploaded before the entry existed.
    """

    is_favorite: bool = False
    contact_id: Optional[int] = None
    tag_ids: List[int] = []
    media_ids: List[int] = []


class LogEntryUpdate(LogEntryBase):
    """Schema for updating a log entry.

    ``tag_ids`` replaces the entry's tag set when present.
    """

    is_favorite: Optional[bool] = None
    contact_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None


class LogEntryOut(LogEntryBase):
    """Schema for returning a bare log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    contact_id: Optional[int] = None
    is_favorite: bool = False
    created_at: datetime
    updated_at: datetime


class LogEntryWithRelations(LogEntryOut):
    """Log entry with its tags, media (oldest first) and contact."""

    tags: List[TagOut] = []
    media: List[MediaOut] = []
    contact: Optional[ContactOut] = None


class ContactWithRelations(ContactOut):
    """Contact with its log entries, newest first."""

    log_entries: List[LogEntryWithRelations] = []


class RealContact(ContactOut):
    """A stored contact, addressed by its integer id."""

    kind: Literal["real"] = "real"


class VirtualContact(BaseModel):
    """A contact derived from unlinked log entries.

    ``id`` is the grouping key itself (email, or phone when there is
    no email), not a stored identifier.
    """

    kind: Literal["virtual"] = "virtual"
    id: str
    name: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    tags: List[TagOut] = []
    log_entries: List[LogEntryWithRelations] = []


ContactView = Annotated[Union[RealContact, VirtualContact], Field(discriminator="kind")]


class VirtualContactPromote(BaseModel):
    """Grouping key of the virtual contact to turn into a stored contact."""

    key: str = Field(min_length=1)


class FavoriteUpdate(BaseModel):
    """Payload for toggling the favorite flag."""

    is_favorite: bool


class MessageTemplateIn(BaseModel):
    """Payload for saving follow-up templates."""

    email_template: Optional[str] = None
    sms_template: Optional[str] = None


class MessageTemplateOut(MessageTemplateIn):
    """Follow-up templates of a user, defaults included."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int


class FollowUpRequest(BaseModel):
    """Payload for emailing a follow-up message to a contact."""

    subject: str = "Great meeting you"


class FollowUpPreview(BaseModel):
    """Follow-up messages rendered for one contact."""

    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    email_body: str
    sms_body: str


class UserBase(BaseModel):
    """Shared fields for user schemas."""

    email: EmailStr
    name: str = Field(min_length=1, max_length=255)


class UserCreate(UserBase):
    """Payload for creating a new user."""

    password: str = Field(min_length=6)


class UserUpdate(BaseModel):
    """Payload for updating the current user's profile."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)


class UserOut(UserBase):
    """Response schema for user data."""

    model_config = ConfigDict(from_attributes=True)

    id: int


class Token(BaseModel):
    """JWT token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    """Schema for requesting a new access token from a refresh token."""

    refresh_token: str


class TokenData(BaseModel):
    """Payload stored inside JWT token."""

    sub: str | None = None
    exp: Optional[datetime] = None
    scope: Optional[str] = None
