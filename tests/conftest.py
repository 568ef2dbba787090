import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from core.config import settings
from core.database import Database, get_db
from core.rate_limit import LoginRateLimiter, get_login_limiter


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Keep hashing cheap; the production work factor is covered separately."""
    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'data' / 'app.db'}")
    await database.init_schema()
    yield database
    await database.dispose()


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return LoginRateLimiter(limit=5, window_seconds=15 * 60, clock=clock)


@pytest_asyncio.fixture
async def client(db, limiter):
    from main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_login_limiter] = lambda: limiter
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()
