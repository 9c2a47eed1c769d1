"""Сервис для работы с пользователями."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import ValidationError
from storefront.models.user import User, UserRole


class UserService:
    """Сервис для работы с пользователями."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> User | None:
        """Получить пользователя по email."""
        stmt = select(User).where(User.email == email)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        name: str | None = None,
        role: str = UserRole.CLIENT.value,
    ) -> User:
        """Создать нового пользователя."""
        if role not in {r.value for r in UserRole}:
            raise ValidationError(f"Недопустимая роль: {role}")

        user = User(email=email, name=name, role=role)
        self.db.add(user)
        await self.db.commit()
        return user

    async def update_role(self, user: User, role: str) -> User:
        """Сменить роль пользователя."""
        if role not in {r.value for r in UserRole}:
            raise ValidationError(f"Недопустимая роль: {role}")

        user.role = role
        await self.db.commit()
        return user
