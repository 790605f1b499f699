import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import insert
from typing import AsyncGenerator
from src.database import Database, get_db
from src.employees.models import employee_table
from src.main import create_app
from src.protocols.service import ProtocolService
from tests.factories import StepClock


@pytest_asyncio.fixture(scope="function")
async def db(tmp_path) -> AsyncGenerator[Database, None]:
    """A fresh SQLite file per test, with retries that do not sleep."""
    database = Database(
        f"sqlite+aiosqlite:///{tmp_path / 'protocols.sqlite'}",
        busy_timeout_ms=1000,
        retry_backoff_seconds=0,
    )
    await database.init_models()
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def employee_id(db: Database) -> int:
    result = await db.execute(
        insert(employee_table).values(email="ana.souza@escritorio.com", permission="advogado")
    )
    return result.inserted_id


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def service(db: Database, clock: StepClock) -> ProtocolService:
    return ProtocolService(db, clock=clock)


@pytest_asyncio.fixture(scope="function")
async def async_client(db: Database) -> AsyncGenerator[AsyncClient, None]:
    """Client for testing API endpoints."""
    app = create_app()
    # Point the get_db dependency at the per-test database
    app.dependency_overrides[get_db] = lambda: db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
