"""Ошибки бизнес-логики и их HTTP-статусы."""
from fastapi import status


class StoreError(Exception):
    """Базовая ошибка магазина."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    """Отсутствуют или некорректны поля запроса."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(StoreError):
    """Объект не найден."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(StoreError):
    """Недостаточно прав или объект принадлежит другому пользователю."""

    status_code = status.HTTP_403_FORBIDDEN


class StockError(StoreError):
    """Недостаточно товара на складе."""

    status_code = status.HTTP_400_BAD_REQUEST
