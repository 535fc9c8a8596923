"""
Pytest configuration and fixtures for testing
"""
import os

# Settings are read once at import time; pin them before any app module loads
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["OPENAI_API_KEY"] = ""
os.environ["REDIS_URL"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_PER_MINUTE"] = "10000"
os.environ["AUTO_TITLE_DELAY_SECONDS"] = "0.01"
os.environ["ENV"] = "test"
os.environ.pop("RENDER", None)

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from database import Base
from crud.conversation import ConversationRepository
from crud.subscription import SubscriptionRepository
from crud.user import UserRepository

# Create in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# One shared connection so every session sees the same in-memory database
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    future=True,
    poolclass=StaticPool,
)

# Create test session factory
TestAsyncSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture
async def test_db():
    """
    Fixture that provides an isolated, in-memory SQLite database connection for each test.

    This fixture:
    - Creates all tables before the test runs
    - Yields a clean AsyncSession for the test
    - Drops all tables after the test completes
    """
    async with test_engine.begin() as conn:
        # Import models to ensure they're registered with Base
        import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)

    async with TestAsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def free_user(test_db):
    """Registered user on the implicit free tier"""
    user = await UserRepository(test_db).create_user({
        "phone_number": "+959111111111",
        "name": "Ko Aung",
        "is_verified": True,
    })
    await SubscriptionRepository(test_db).create_free_subscription(user.id)
    await test_db.commit()
    return user


@pytest.fixture
async def paid_user(test_db):
    user = await UserRepository(test_db).create_user({
        "phone_number": "+959222222222",
        "name": "Ma Hla",
        "is_verified": True,
    })
    subscription_repo = SubscriptionRepository(test_db)
    await subscription_repo.create_free_subscription(user.id)
    await subscription_repo.upgrade_to_paid(user.id, payment_reference="cs_test_paid", duration_days=30)
    await test_db.commit()
    return user


@pytest.fixture
async def conversation(test_db, free_user):
    conversation = await ConversationRepository(test_db).create_conversation(free_user.id, "en")
    await test_db.commit()
    return conversation


@pytest.fixture
def session_factory(test_db):
    """Session factory bound to the test database, for code that opens its own sessions"""
    return TestAsyncSessionLocal


@pytest.fixture
async def client(session_factory, monkeypatch):
    """HTTP client against the app, with every request session bound to the test database"""
    from httpx import AsyncClient, ASGITransport
    from database import get_db
    from jobs.auto_title import auto_titler
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(auto_titler, "session_factory", session_factory)
    monkeypatch.setattr(auto_titler, "delay_seconds", 0.2)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    auto_titler.cancel_all()
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(free_user):
    from auth_utils import create_jwt
    return {"Authorization": f"Bearer {create_jwt(free_user.id)}"}
