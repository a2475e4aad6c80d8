from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
import sys

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.app.db.base import Base  # noqa: E402
from backend.app.db.session import build_sessionmaker  # noqa: E402
from backend.app.models import Game, Platform, User  # noqa: E402
from backend.app.repositories.credential import UserCredentialRepository  # noqa: E402
from backend.app.security.encryption import CredentialVault, VaultKey  # noqa: E402

TEST_KEY = VaultKey(bytes(range(32)))


@pytest.fixture
def vault_key() -> VaultKey:
    return TEST_KEY


@pytest.fixture
def vault(vault_key) -> CredentialVault:
    return CredentialVault(vault_key)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    async with build_sessionmaker(engine)() as session:
        yield session


@pytest_asyncio.fixture
async def seeded(db):
    """Two users, the PC platform and one retro-family platform."""
    user = User(username="player_one", hashed_password="not-a-real-hash")
    other = User(username="player_two", hashed_password="not-a-real-hash")
    pc = Platform(name="pc", display_name="PC (Windows)", platform_type="pc", igdb_id=6)
    snes = Platform(
        name="snes",
        display_name="Super Nintendo",
        platform_type="console",
        platform_family="retro",
        igdb_id=19,
    )
    db.add_all([user, other, pc, snes])
    await db.commit()
    return SimpleNamespace(user=user, other=other, pc=pc, snes=snes)


@pytest.fixture
def make_game(db):
    async def _make_game(name="Test Game", steam_app_id=None, retro_game_id=None) -> Game:
        game = Game(name=name, steam_app_id=steam_app_id, retro_game_id=retro_game_id)
        db.add(game)
        await db.commit()
        return game

    return _make_game


@pytest.fixture
def store_credential(db, vault):
    async def _store(user_id, service, payload, credential_type="api_key", is_active=True):
        return await UserCredentialRepository(db).upsert(
            user_id,
            service=service,
            credential_type=credential_type,
            encrypted_credentials=vault.encrypt(payload),
            is_active=is_active,
        )

    return _store
