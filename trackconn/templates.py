"""Follow-up message template routes and rendering."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import get_current_user
from .core import get_settings
from .database import get_db
from .models import User

router = APIRouter(prefix="/message-templates", tags=["message templates"])


def effective_templates(db: Session, user_id: int) -> schemas.MessageTemplateOut:
    """The user's saved templates, with built-in defaults for unset ones."""
    settings = get_settings()
    saved = crud.get_message_template(db, user_id)
    email_template = saved.email_template if saved else None
    sms_template = saved.sms_template if saved else None
    return schemas.MessageTemplateOut(
        user_id=user_id,
        email_template=email_template or settings.DEFAULT_EMAIL_TEMPLATE,
        sms_template=sms_template or settings.DEFAULT_SMS_TEMPLATE,
    )


def render_message(
    template: str, contact_name: str | None, user_name: str | None
) -> str:
    """
    Fill the ``[Name]`` and ``[Your Name]`` placeholders.

    A contact without a name is greeted as "there". Other placeholders
    are left for the user to edit.
    """
    return template.replace("[Name]", contact_name or "there").replace(
        "[Your Name]", user_name or ""
    )


@router.get("/", response_model=schemas.MessageTemplateOut)
def get_templates(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Return the current user's follow-up templates."""
    return effective_templates(db, current_user.id)


@router.put("/", response_model=schemas.MessageTemplateOut)
def save_templates(
    template_in: schemas.MessageTemplateIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Save the current user's follow-up templates."""
    crud.upsert_message_template(db, current_user.id, template_in)
    return effective_templates(db, current_user.id)
