import os
import sys
from pathlib import Path

os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("USAGE_LOG_ENABLED", "false")


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from vista_coupons.db.base import Base  # noqa: E402
from vista_coupons.observability.journey import JourneyObservabilityStore  # noqa: E402
from vista_coupons.services.ledger import InMemoryKeyValueBackend  # noqa: E402

from factories import FrozenClock, RecordingSleep, StubValidator, build_journey  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    import vista_coupons.models  # noqa: F401

    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def validator() -> StubValidator:
    return StubValidator()


@pytest.fixture
def ledger_backend() -> InMemoryKeyValueBackend:
    return InMemoryKeyValueBackend()


@pytest.fixture
def observability() -> JourneyObservabilityStore:
    return JourneyObservabilityStore()


@pytest_asyncio.fixture
async def journey(validator, ledger_backend, clock, sleep, observability):
    engine = build_journey(
        validator=validator,
        backend=ledger_backend,
        clock=clock,
        sleep=sleep,
        observability=observability,
    )
    await engine.start()
    try:
        yield engine
    finally:
        await engine.aclose()
