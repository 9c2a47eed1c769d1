"""Comments API."""
from typing import List
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.core.auth import get_current_user, get_optional_user, require_roles
from storefront.models.user import User, UserRole
from storefront.services.comment_service import CommentService
from storefront.api.v1.products import CommentResponse, build_comment_response

router = APIRouter()

moderators = require_roles(UserRole.ADMIN, UserRole.MANAGER)


class CommentRequest(BaseModel):
    content: str


class ModerateRequest(BaseModel):
    approve: bool


class HiddenRequest(BaseModel):
    hidden: bool


# /comments/pending объявлен раньше /comments/{product_id}
@router.get("/comments/pending", response_model=List[CommentResponse])
async def get_pending_comments(
    user: User = Depends(moderators),
    db: AsyncSession = Depends(get_db),
):
    """Комментарии, ожидающие модерации."""
    service = CommentService(db)
    comments = await service.get_pending()
    return [build_comment_response(comment) for comment in comments]


@router.put("/comments/moderate/{comment_id}", response_model=CommentResponse)
async def moderate_comment(
    comment_id: uuid.UUID,
    request: ModerateRequest,
    user: User = Depends(moderators),
    db: AsyncSession = Depends(get_db),
):
    """Одобрить или отклонить комментарий."""
    service = CommentService(db)
    comment = await service.moderate(comment_id, request.approve)
    return build_comment_response(comment)


@router.patch("/comments/{comment_id}/hidden", response_model=CommentResponse)
async def set_comment_hidden(
    comment_id: uuid.UUID,
    request: HiddenRequest,
    user: User = Depends(moderators),
    db: AsyncSession = Depends(get_db),
):
    """Скрыть или показать комментарий."""
    service = CommentService(db)
    comment = await service.set_hidden(comment_id, request.hidden)
    return build_comment_response(comment)


@router.delete("/admin/comments/{comment_id}")
async def admin_delete_comment(
    comment_id: uuid.UUID,
    user: User = Depends(moderators),
    db: AsyncSession = Depends(get_db),
):
    """Удалить любой комментарий."""
    service = CommentService(db)
    await service.admin_delete(comment_id)
    return {"message": "Комментарий удалён"}


@router.post("/comments/{product_id}", response_model=CommentResponse, status_code=201)
async def create_comment(
    product_id: uuid.UUID,
    request: CommentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Оставить комментарий к купленному товару.

    Комментарий виден остальным после модерации.
    """
    service = CommentService(db)
    comment = await service.create(user.id, product_id, request.content)
    return build_comment_response(comment)


@router.get("/comments/{product_id}", response_model=List[CommentResponse])
async def get_product_comments(
    product_id: uuid.UUID,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Комментарии к товару."""
    service = CommentService(db)
    comments = await service.get_for_product(product_id, viewer_id=user.id if user else None)
    return [build_comment_response(comment) for comment in comments]


@router.put("/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: uuid.UUID,
    request: CommentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Изменить свой комментарий."""
    service = CommentService(db)
    comment = await service.update(user.id, comment_id, request.content)
    return build_comment_response(comment)


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Удалить свой комментарий."""
    service = CommentService(db)
    await service.delete(user.id, comment_id)
    return {"message": "Комментарий удалён"}
