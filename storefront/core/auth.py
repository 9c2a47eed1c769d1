"""Dependencies для аутентификации и проверки ролей."""
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db
from storefront.core.security import decode_access_token
from storefront.models.user import User, UserRole

security = HTTPBearer(auto_error=False)


async def _load_user(token: str, db: AsyncSession) -> User | None:
    payload = decode_access_token(token)
    if payload is None:
        return None

    try:
        user_id = uuid.UUID(str(payload.get("user_id")))
    except ValueError:
        return None

    return await db.get(User, user_id)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Текущий пользователь по bearer-токену.

    Роль всегда берётся из БД, а не из токена.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Требуется авторизация",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await _load_user(credentials.credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неверный или истекший токен",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Пользователь, если токен передан и валиден, иначе None (публичные эндпоинты)."""
    if credentials is None:
        return None
    return await _load_user(credentials.credentials, db)


def require_roles(*roles: UserRole):
    """
    Фабрика dependency для проверки роли.

    Пример: ``Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER))``.
    """
    allowed = {role.value for role in roles}

    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Недостаточно прав доступа",
            )
        return user

    return checker
