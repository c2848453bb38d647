import os

# Must be set before procure_api is imported: settings are read once.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

import uuid
from dataclasses import dataclass

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import procure_api.models  # noqa: F401
from procure_api.database import Base, get_db, get_session_factory
from procure_api.main import app
from procure_api.models.department import Department
from procure_api.models.user import User
from procure_api.services.access_policy import Actor
from procure_api.services.auth_service import actor_for, hash_password, issue_token

PASSWORD = "Secret123!"


@dataclass
class Org:
    """Two departments and one user per role, persisted and committed."""

    purchasing: Department
    finance: Department
    requester: Actor
    other_requester: Actor
    manager: Actor
    other_manager: Actor
    approver: Actor
    admin: Actor


def auth_for(actor: Actor) -> dict:
    return {"Authorization": f"Bearer {issue_token(actor)}"}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def password_hash() -> str:
    return hash_password(PASSWORD)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'procure.db'}", poolclass=NullPool
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def org(session_factory, password_hash) -> Org:
    async with session_factory() as session:
        purchasing = Department(code="PUR", name="Purchasing")
        finance = Department(code="FIN", name="Finance")
        session.add_all([purchasing, finance])
        await session.flush()

        def _user(name: str, role: str, department=None) -> User:
            return User(
                id=uuid.uuid4(),
                name=name,
                email=f"{name.lower().replace(' ', '.')}@acme.com",
                password_hash=password_hash,
                role=role,
                department_id=department.id if department else None,
            )

        users = {
            "requester": _user("Ana Souza", "USER", purchasing),
            "other_requester": _user("Bruno Lima", "USER", finance),
            "manager": _user("Carla Mendes", "MANAGER", purchasing),
            "other_manager": _user("Diego Rocha", "MANAGER", finance),
            "approver": _user("Elisa Prado", "APPROVER", finance),
            "admin": _user("Fabio Nunes", "ADMIN"),
        }
        session.add_all(users.values())
        await session.commit()

    return Org(
        purchasing=purchasing,
        finance=finance,
        **{key: actor_for(user) for key, user in users.items()},
    )


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return auth_for
