"""
Email template endpoints.

Permission: mail. Users see their own templates plus every shared one;
only the owner may change or delete a template.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.email import EmailTemplate
from ispecia.models.user import User
from ispecia.schemas.common import MessageResponse
from ispecia.schemas.email import EmailTemplateCreate, EmailTemplateUpdate, EmailTemplateResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _visible_templates(user: User):
    return select(EmailTemplate).where(
        or_(EmailTemplate.user_id == user.id, EmailTemplate.is_shared.is_(True))
    )


async def _get_owned_template(db: AsyncSession, template_id: str, user: User) -> EmailTemplate:
    result = await db.execute(
        select(EmailTemplate).where(EmailTemplate.id == template_id, EmailTemplate.user_id == user.id)
    )
    template = result.scalar_one_or_none()
    if template is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Template not found or unauthorized"
        )
    return template


@router.get("", response_model=list[EmailTemplateResponse])
async def list_templates(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    result = await db.execute(_visible_templates(current_user).order_by(EmailTemplate.created.desc()))
    return [EmailTemplateResponse.model_validate(t) for t in result.scalars().all()]


@router.post("", response_model=EmailTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: EmailTemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    template = EmailTemplate(**data.model_dump(), user_id=current_user.id)
    db.add(template)
    await db.flush()
    logger.info("User %s created email template %s", current_user.id, template.id)
    return EmailTemplateResponse.model_validate(template)


@router.get("/{template_id}", response_model=EmailTemplateResponse)
async def get_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    result = await db.execute(_visible_templates(current_user).where(EmailTemplate.id == template_id))
    template = result.scalar_one_or_none()
    if template is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Template not found"
        )
    return EmailTemplateResponse.model_validate(template)


@router.patch("/{template_id}", response_model=EmailTemplateResponse)
async def update_template(
    template_id: str,
    data: EmailTemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    template = await _get_owned_template(db, template_id, current_user)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field != "description":
            continue
        setattr(template, field, value)
    await db.flush()
    return EmailTemplateResponse.model_validate(template)


@router.delete("/{template_id}", response_model=MessageResponse)
async def delete_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    template = await _get_owned_template(db, template_id, current_user)
    await db.delete(template)
    await db.flush()
    return MessageResponse(message="Template deleted")
