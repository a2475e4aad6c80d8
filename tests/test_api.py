from typing import List
from unittest.mock import AsyncMock, Mock
from urllib.parse import parse_qs, urlsplit

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from backend.app.api import deps
from backend.app.db.base import get_db
from backend.app.integrations.base import AchievementSource, NormalizedAchievement, SourceAccount, SourceApi
from backend.app.integrations.http import HttpClient
from backend.app.integrations.steam import SteamWebApi
from backend.app import main as main_module
from backend.app.main import app
from backend.app.repositories.credential import UserCredentialRepository
from backend.app.security.encryption import get_vault, get_vault_key
from backend.app.security.jwt import create_access_token

STEAM_ID = "76561198012345678"


class StaticSteamSource(AchievementSource):
    source = SourceApi.STEAM
    credential_service = "steam"
    game_id_attribute = "steam_app_id"

    def __init__(self, achievements):
        self.achievements = achievements

    def account_from_credentials(self, credentials):
        return SourceAccount(account_id=credentials["steam_id"])

    async def fetch_achievements(self, external_game_id, account) -> List[NormalizedAchievement]:
        return list(self.achievements)


@pytest.fixture
def steam_http():
    http = Mock(spec=HttpClient)
    http.post_form = AsyncMock(return_value=(200, "ns:http://specs.openid.net/auth/2.0\nis_valid:false\n"))
    http.get_json = AsyncMock(return_value={"response": {"players": []}})
    return http


@pytest_asyncio.fixture
async def client(db, vault, seeded, steam_http):
    async def override_get_db():
        yield db

    achievements = [
        NormalizedAchievement(external_id=f"ACH_{i}", name=f"Achievement {i}", unlocked=i < 20)
        for i in range(50)
    ]
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_vault] = lambda: vault
    app.dependency_overrides[deps.get_http_client] = lambda: steam_http
    app.dependency_overrides[deps.get_steam_api] = lambda: SteamWebApi(steam_http, api_key="test-key")
    app.dependency_overrides[deps.get_achievement_sources] = lambda: [StaticSteamSource(achievements)]

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(seeded):
    token = create_access_token({"sub": seeded.user.username})
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_register_and_login(client):
    response = await client.post("/api/v1/auth/register", json={"username": "newplayer", "password": "hunter2hunter2"})
    assert response.status_code == 201
    assert "hashed_password" not in response.json()

    duplicate = await client.post("/api/v1/auth/register", json={"username": "newplayer", "password": "another-pass"})
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "CONFLICT"

    bad = await client.post("/api/v1/auth/login", data={"username": "newplayer", "password": "wrong-password"})
    assert bad.status_code == 401
    assert bad.json()["code"] == "UNAUTHORIZED"
    assert bad.headers["WWW-Authenticate"] == "Bearer"

    login = await client.post("/api/v1/auth/login", data={"username": "newplayer", "password": "hunter2hunter2"})
    assert login.status_code == 200
    assert login.json()["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_achievements_require_auth(client):
    response = await client.get("/api/v1/achievements/1")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_is_unauthorized(client):
    response = await client.get("/api/v1/achievements/1", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json() == {"detail": "Could not validate credentials", "code": "UNAUTHORIZED"}
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_startup_derives_vault_key(monkeypatch):
    monkeypatch.setattr(main_module, "init_models", AsyncMock())
    get_vault_key.cache_clear()

    async with main_module.lifespan(app):
        assert get_vault_key.cache_info().currsize == 1

    main_module.init_models.assert_awaited_once()
    get_vault_key.cache_clear()


@pytest.mark.asyncio
async def test_unknown_game_is_404(client, auth_headers):
    response = await client.get("/api/v1/achievements/999", headers=auth_headers)

    assert response.status_code == 404
    assert response.json() == {"detail": "Game with id 999 not found", "code": "NOT_FOUND"}


@pytest.mark.asyncio
async def test_sync_manual_is_rejected(client, auth_headers, make_game):
    game = await make_game(steam_app_id=440)

    response = await client.post(f"/api/v1/achievements/{game.id}/sync", json={"source": "manual"}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert "manual" in response.json()["detail"]


@pytest.mark.asyncio
async def test_sync_then_progress(client, auth_headers, seeded, make_game, store_credential):
    await store_credential(seeded.user.id, "steam", {"steam_id": STEAM_ID}, credential_type="steam_openid")
    game = await make_game(steam_app_id=440)

    synced = await client.post(f"/api/v1/achievements/{game.id}/sync", json={"source": "steam"}, headers=auth_headers)
    assert synced.status_code == 200
    body = synced.json()
    assert (body["source"], body["total"], body["unlocked"]) == ("steam", 50, 20)
    assert set(body["achievements"][0]) == {
        "id", "name", "description", "icon_url", "rarity_percentage", "points", "unlocked", "unlock_date",
    }

    progress = await client.get(f"/api/v1/achievements/{game.id}/progress", headers=auth_headers)
    assert progress.json() == {"unlocked": 20, "total": 50, "percentage": 40}

    chained = await client.get(f"/api/v1/achievements/{game.id}", headers=auth_headers)
    assert chained.json()["source"] == "steam"


@pytest.mark.asyncio
async def test_steam_connect_returns_redirect(client, auth_headers):
    response = await client.get("/api/v1/steam/connect", headers=auth_headers)

    assert response.status_code == 200
    query = parse_qs(urlsplit(response.json()["redirect_url"]).query)
    assert query["openid.realm"] == ["http://test"]
    assert query["openid.return_to"] == ["http://test/api/v1/steam/callback"]


@pytest.mark.asyncio
async def test_steam_callback_unconfirmed_is_failed(client, auth_headers, db, seeded):
    params = {
        "openid.mode": "id_res",
        "openid.claimed_id": f"https://steamcommunity.com/openid/id/{STEAM_ID}",
        "openid.sig": "abc",
    }

    response = await client.get("/api/v1/steam/callback", params=params, headers=auth_headers)

    assert response.json() == {"status": "failed"}
    assert await UserCredentialRepository(db).find_by_user_and_service(seeded.user.id, "steam") is None


@pytest.mark.asyncio
async def test_steam_callback_links_account(client, auth_headers, steam_http):
    steam_http.post_form.return_value = (200, "is_valid:true\n")
    steam_http.get_json.return_value = {
        "response": {"players": [{"steamid": STEAM_ID, "personaname": "Gordon", "avatarfull": "https://a/full.jpg"}]}
    }
    params = {
        "openid.mode": "id_res",
        "openid.claimed_id": f"https://steamcommunity.com/openid/id/{STEAM_ID}",
        "openid.sig": "abc",
    }

    response = await client.get("/api/v1/steam/callback", params=params, headers=auth_headers)

    assert response.json() == {
        "status": "linked",
        "steam_id": STEAM_ID,
        "display_name": "Gordon",
        "avatar_url": "https://a/full.jpg",
    }

    unlinked = await client.delete("/api/v1/steam/link", headers=auth_headers)
    assert unlinked.status_code == 204


@pytest.mark.asyncio
async def test_credentials_lifecycle(client, auth_headers):
    saved = await client.post(
        "/api/v1/credentials/",
        json={"service": "rawg", "credential_type": "api_key", "credentials": {"api_key": "rawg-secret"}},
        headers=auth_headers,
    )
    assert saved.status_code == 200

    listed = await client.get("/api/v1/credentials/", headers=auth_headers)
    assert [s["service"] for s in listed.json()["services"]] == ["rawg"]
    assert "rawg-secret" not in listed.text

    validated = await client.post("/api/v1/credentials/rawg/validate", headers=auth_headers)
    assert validated.json()["valid"] is True

    deleted = await client.delete("/api/v1/credentials/rawg", headers=auth_headers)
    assert deleted.status_code == 204

    missing = await client.delete("/api/v1/credentials/rawg", headers=auth_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_retroachievements_invalid_credentials_rejected(client, auth_headers, steam_http):
    steam_http.get_json.return_value = {"User": "SomeoneElse"}

    response = await client.post(
        "/api/v1/retroachievements/credentials",
        json={"username": "Mario", "api_key": "ra-key"},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_retroachievements_validate_does_not_store(client, auth_headers, steam_http, db, seeded):
    payload = {"username": "Mario", "api_key": "ra-key"}

    steam_http.get_json.return_value = {"User": "mario"}
    valid = await client.post("/api/v1/retroachievements/validate", json=payload, headers=auth_headers)
    steam_http.get_json.return_value = {"User": "Luigi"}
    invalid = await client.post("/api/v1/retroachievements/validate", json=payload, headers=auth_headers)

    assert valid.status_code == 200
    assert valid.json() == {"valid": True}
    assert invalid.json() == {"valid": False}
    assert await UserCredentialRepository(db).find_by_user_and_service(seeded.user.id, "retroachievements") is None
