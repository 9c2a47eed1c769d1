import os

# Настройки читаются при импорте storefront, поэтому окружение задаём заранее
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_URL"] = ""
os.environ["ENVIRONMENT"] = "test"

from decimal import Decimal  # noqa: E402
from fnmatch import fnmatchcase  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

import storefront.models  # noqa: E402,F401
from storefront.core.cache import cache_service  # noqa: E402
from storefront.core.security import create_access_token  # noqa: E402
from storefront.database import Base, get_db  # noqa: E402
from storefront.main import app  # noqa: E402
from storefront.services.product_service import ProductService  # noqa: E402
from storefront.services.user_service import UserService  # noqa: E402


@pytest.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user) -> dict:
    token = create_access_token({"user_id": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth():
    return auth_headers


@pytest.fixture()
async def admin(db):
    return await UserService(db).create_user(email="admin@example.com", name="Админ", role="ADMIN")


@pytest.fixture()
async def manager(db):
    return await UserService(db).create_user(email="manager@example.com", name="Менеджер", role="MANAGER")


@pytest.fixture()
async def customer(db):
    return await UserService(db).create_user(email="customer@example.com", name="Покупатель")


@pytest.fixture()
async def other_customer(db):
    return await UserService(db).create_user(email="other@example.com", name="Другой покупатель")


@pytest.fixture()
def make_product(db, admin):
    """Фабрика товара с одним вариантом. Возвращает товар со всеми связями."""

    async def factory(
        title="Футболка",
        price=Decimal("1000"),
        season="SUMMER",
        color="black",
        sizes=None,
        variants=None,
        **fields,
    ):
        service = ProductService(db)
        product_id = await service.create(
            user_id=admin.id,
            title=title,
            price=price,
            season=season,
            variants=variants or [
                {
                    "color": color,
                    "sizes": sizes or [{"size": "M", "quantity": 5}],
                    "images": ["https://cdn.example.com/tshirt.jpg"],
                }
            ],
            **fields,
        )
        return await service.get_by_id(product_id)

    return factory


class InMemoryRedis:
    """Минимальная замена клиента Redis для проверки кэша в тестах."""

    def __init__(self):
        self.values = {}
        self.ttls = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self.values[key] = value
        self.ttls[key] = ex
        return True

    async def keys(self, pattern):
        return [key for key in self.values if fnmatchcase(key, pattern)]

    async def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                self.ttls.pop(key, None)
                deleted += 1
        return deleted

    async def aclose(self):
        pass


@pytest.fixture()
def redis_cache():
    """Включить кэш на время теста."""
    fake = InMemoryRedis()
    cache_service._redis = fake
    yield fake
    cache_service._redis = None
