"""pytest fixtures for the mint pipeline tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- session_factory: Function-scoped session factory over a fresh SQLite database file
- session: Function-scoped database session
- uow_factory: Function-scoped UnitOfWork factory
- make_event: Builder for FishCaughtEvent instances
- image_generator, storage_publisher, chain_finalizer: Recording fake stage clients
- pipeline: MintPipeline wired to the fakes
"""

import os

# Settings are loaded at import time by fishit.app, configure them first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import asyncio  # noqa: E402
from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from fishit.core.database import create_tables, get_engine, setup_db_session  # noqa: E402
from fishit.services.blockchain.events import FishCaughtEvent  # noqa: E402
from fishit.services.interfaces import StorageRefs  # noqa: E402
from fishit.services.mint_pipeline import MintPipeline  # noqa: E402
from fishit.uow import create_uow_factory  # noqa: E402

OWNER = "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb0"


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Provide a session factory over an empty SQLite database with all tables created."""
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'fishit-test.db'}"
    factory = setup_db_session(db_url)
    engine = get_engine(factory)
    await create_tables(engine)

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def make_event():
    """Build FishCaughtEvent instances with sensible defaults."""

    def _make_event(item_id: int = 42, **overrides) -> FishCaughtEvent:
        fields = {
            "item_id": item_id,
            "owner_address": OWNER,
            "tier": "Rare",
            "zone": "Reef",
            "bait_type": "Common",
            "random_seed": "123456789012345678901234567890",
            "mint_tx_ref": "0x" + f"{item_id:064x}",
            "block_number": 1000 + item_id,
            "log_index": 0,
        }
        fields.update(overrides)
        return FishCaughtEvent(**fields)

    return _make_event


# Fake stage clients


class FakeImageGenerator:
    """Records calls; raises `error` when set."""

    def __init__(self, image: bytes = b"\x89PNG fake image"):
        self.image = image
        self.error: Exception | None = None
        self.delay = 0.0
        self.calls: list[tuple[str, str, int]] = []

    async def generate(self, tier: str, zone: str, seed: int) -> bytes:
        self.calls.append((tier, zone, seed))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.image


class FakeStoragePublisher:
    def __init__(self):
        self.error: Exception | None = None
        self.calls: list[tuple[bytes, dict]] = []

    async def publish(self, image: bytes, metadata_fields: dict) -> StorageRefs:
        self.calls.append((image, metadata_fields))
        if self.error is not None:
            raise self.error
        n = len(self.calls)
        return StorageRefs(
            image_ref=f"bafyimage{n}",
            metadata_ref=f"bafymeta{n}",
            metadata_uri=f"ipfs://bafymeta{n}",
        )


class FakeChainFinalizer:
    def __init__(self):
        self.error: Exception | None = None
        self.calls: list[tuple[int, str]] = []

    async def finalize(self, item_id: int, uri: str) -> str:
        self.calls.append((item_id, uri))
        if self.error is not None:
            raise self.error
        return "0x" + f"{item_id:064x}"[::-1]


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def storage_publisher() -> FakeStoragePublisher:
    return FakeStoragePublisher()


@pytest.fixture
def chain_finalizer() -> FakeChainFinalizer:
    return FakeChainFinalizer()


@pytest.fixture
def pipeline(uow_factory, image_generator, storage_publisher, chain_finalizer) -> MintPipeline:
    return MintPipeline(
        uow_factory=uow_factory,
        image_generator=image_generator,
        storage_publisher=storage_publisher,
        chain_finalizer=chain_finalizer,
    )
