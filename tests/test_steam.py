import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock
from urllib.parse import parse_qs, urlsplit

import pytest

from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.integrations.base import SourceAccount
from backend.app.integrations.http import HttpClient
from backend.app.integrations.steam import (
    SteamAccountLinker,
    SteamAchievementSource,
    SteamWebApi,
)
from backend.app.repositories.credential import UserCredentialRepository

STEAM_ID = "76561198012345678"

SCHEMA = [
    {"name": "ACH_WIN", "displayName": "Winner", "description": "Win a match", "icon": "https://cdn/win.jpg"},
    {"name": "ACH_LOSE", "displayName": "Loser", "description": "", "icon": ""},
    {"name": "ACH_SECRET", "displayName": "", "icon": "https://cdn/secret.jpg"},
]

CALLBACK_PARAMS = {
    "openid.ns": "http://specs.openid.net/auth/2.0",
    "openid.mode": "id_res",
    "openid.op_endpoint": "https://steamcommunity.com/openid/login",
    "openid.claimed_id": f"https://steamcommunity.com/openid/id/{STEAM_ID}",
    "openid.identity": f"https://steamcommunity.com/openid/id/{STEAM_ID}",
    "openid.return_to": "https://app.example.com/api/v1/steam/callback",
    "openid.response_nonce": "2024-01-01T00:00:00Zabc",
    "openid.assoc_handle": "1234567890",
    "openid.signed": "signed,op_endpoint,claimed_id,identity,return_to,response_nonce,assoc_handle",
    "openid.sig": "c2lnbmF0dXJl",
}


def _api(schema=None, player=None, percentages=None, api_key="steam-key"):
    api = Mock(spec=SteamWebApi)
    api.api_key = api_key
    api.get_schema_for_game = AsyncMock(return_value=SCHEMA if schema is None else schema)
    api.get_player_achievements = AsyncMock(return_value=player or [])
    api.get_global_achievement_percentages = AsyncMock(return_value=percentages or {})
    api.get_player_summary = AsyncMock(return_value=None)
    return api


# --- Achievement source ---

@pytest.mark.asyncio
async def test_fetch_merges_schema_unlocks_and_rarity():
    api = _api(
        player=[
            {"apiname": "ACH_WIN", "achieved": 1, "unlocktime": 1700000000},
            {"apiname": "ACH_LOSE", "achieved": 0, "unlocktime": 0},
        ],
        percentages={"ACH_WIN": 42.5, "ACH_LOSE": 3.1},
    )
    source = SteamAchievementSource(api)

    result = await source.fetch_achievements(440, SourceAccount(STEAM_ID))

    assert [a.external_id for a in result] == ["ACH_WIN", "ACH_LOSE", "ACH_SECRET"]
    win, lose, secret = result
    assert win.unlocked is True
    assert win.unlock_time == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert win.rarity_percentage == 42.5
    assert win.icon_url == "https://cdn/win.jpg"
    assert lose.unlocked is False
    assert lose.unlock_time is None
    assert lose.icon_url is None
    assert secret.name == "ACH_SECRET"
    assert secret.rarity_percentage is None
    api.get_player_achievements.assert_awaited_once_with(STEAM_ID, 440)


@pytest.mark.asyncio
async def test_fetch_skips_schema_entries_without_name():
    api = _api(schema=[{"displayName": "Nameless"}, *SCHEMA])

    result = await SteamAchievementSource(api).fetch_achievements(440, SourceAccount(STEAM_ID))

    assert [a.external_id for a in result] == ["ACH_WIN", "ACH_LOSE", "ACH_SECRET"]


@pytest.mark.asyncio
async def test_fetch_schema_failure_returns_empty():
    api = _api()
    api.get_schema_for_game.side_effect = RuntimeError("boom")

    assert await SteamAchievementSource(api).fetch_achievements(440, SourceAccount(STEAM_ID)) == []
    api.get_player_achievements.assert_not_awaited()


@pytest.mark.asyncio
async def test_fetch_private_profile_degrades_to_locked():
    api = _api(percentages={"ACH_WIN": 10.0})
    api.get_player_achievements.side_effect = ValueError("Profile is not public")

    result = await SteamAchievementSource(api).fetch_achievements(440, SourceAccount(STEAM_ID))

    assert len(result) == 3
    assert not any(a.unlocked for a in result)
    assert result[0].rarity_percentage == 10.0


@pytest.mark.asyncio
async def test_fetch_percentage_failure_leaves_rarity_unknown():
    api = _api(player=[{"apiname": "ACH_WIN", "achieved": 1, "unlocktime": 1700000000}])
    api.get_global_achievement_percentages.side_effect = RuntimeError("unavailable")

    result = await SteamAchievementSource(api).fetch_achievements(440, SourceAccount(STEAM_ID))

    assert result[0].unlocked is True
    assert all(a.rarity_percentage is None for a in result)


@pytest.mark.asyncio
async def test_fetch_without_api_key_is_validation_error():
    api = _api(api_key=None)

    with pytest.raises(ValidationError, match="API key"):
        await SteamAchievementSource(api).fetch_achievements(440, SourceAccount(STEAM_ID))


def test_account_from_credentials():
    source = SteamAchievementSource(_api())

    assert source.account_from_credentials({"steam_id": STEAM_ID}).account_id == STEAM_ID
    with pytest.raises(ValidationError):
        source.account_from_credentials({"display_name": "no id"})


# --- Web API client ---

@pytest.mark.asyncio
async def test_player_achievements_unsuccessful_raises():
    http = Mock(spec=HttpClient)
    http.get_json = AsyncMock(return_value={"playerstats": {"success": False, "error": "Profile is not public"}})
    api = SteamWebApi(http, api_key="k")

    with pytest.raises(ValueError, match="not public"):
        await api.get_player_achievements(STEAM_ID, 440)


@pytest.mark.asyncio
async def test_global_percentages_are_floats():
    http = Mock(spec=HttpClient)
    http.get_json = AsyncMock(return_value={
        "achievementpercentages": {"achievements": [{"name": "A", "percent": "12.5"}, {"name": "B", "percent": 3}]}
    })
    api = SteamWebApi(http, api_key="k")

    assert await api.get_global_achievement_percentages(440) == {"A": 12.5, "B": 3.0}


@pytest.mark.asyncio
async def test_web_api_without_key_raises_before_request():
    http = Mock(spec=HttpClient)
    http.get_json = AsyncMock()
    api = SteamWebApi(http, api_key=None)

    with pytest.raises(ValidationError):
        await api.get_schema_for_game(440)
    http.get_json.assert_not_awaited()


# --- OpenID linking ---

def _linker(db, vault, http=None, api=None, verify_timeout=None):
    return SteamAccountLinker(
        http or Mock(spec=HttpClient),
        api or _api(),
        UserCredentialRepository(db),
        vault,
        openid_url="https://steamcommunity.com/openid/login",
        verify_timeout=verify_timeout,
    )


def test_login_url_uses_origin_as_realm(db, vault):
    url = _linker(db, vault).get_login_url("https://app.example.com/api/v1/steam/callback")

    parts = urlsplit(url)
    query = parse_qs(parts.query)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://steamcommunity.com/openid/login"
    assert query["openid.mode"] == ["checkid_setup"]
    assert query["openid.realm"] == ["https://app.example.com"]
    assert query["openid.return_to"] == ["https://app.example.com/api/v1/steam/callback"]
    assert query["openid.claimed_id"] == ["http://specs.openid.net/auth/2.0/identifier_select"]


@pytest.mark.asyncio
async def test_verify_callback_success(db, vault):
    http = Mock(spec=HttpClient)
    http.post_form = AsyncMock(return_value=(200, "ns:http://specs.openid.net/auth/2.0\nis_valid:true\n"))

    steam_id = await _linker(db, vault, http=http).verify_callback(CALLBACK_PARAMS)

    assert steam_id == STEAM_ID
    posted = http.post_form.await_args.args[1]
    assert posted["openid.mode"] == "check_authentication"
    assert posted["openid.sig"] == CALLBACK_PARAMS["openid.sig"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params,response",
    [
        ({**CALLBACK_PARAMS, "openid.mode": "cancel"}, (200, "is_valid:true")),
        (CALLBACK_PARAMS, (200, "ns:http://specs.openid.net/auth/2.0\nis_valid:false\n")),
        (CALLBACK_PARAMS, (500, "is_valid:true")),
        ({**CALLBACK_PARAMS, "openid.claimed_id": "https://evil.example.com/id/abc"}, (200, "is_valid:true")),
    ],
)
async def test_verify_callback_failures_return_none(db, vault, params, response):
    http = Mock(spec=HttpClient)
    http.post_form = AsyncMock(return_value=response)

    assert await _linker(db, vault, http=http).verify_callback(params) is None


@pytest.mark.asyncio
async def test_verify_callback_network_error_returns_none(db, vault):
    http = Mock(spec=HttpClient)
    http.post_form = AsyncMock(side_effect=ConnectionError("reset"))

    assert await _linker(db, vault, http=http).verify_callback(CALLBACK_PARAMS) is None


@pytest.mark.asyncio
async def test_verification_timeout_is_not_linked(db, vault, seeded):
    async def hang(url, data):
        await asyncio.sleep(5)
        return 200, "is_valid:true"

    http = Mock(spec=HttpClient)
    http.post_form = hang
    api = _api()
    linker = _linker(db, vault, http=http, api=api, verify_timeout=0.05)

    result = await linker.complete_link(seeded.user.id, CALLBACK_PARAMS)

    assert result is None
    api.get_player_summary.assert_not_awaited()
    assert await UserCredentialRepository(db).find_by_user_and_service(seeded.user.id, "steam") is None


@pytest.mark.asyncio
async def test_complete_link_stores_encrypted_profile(db, vault, seeded):
    http = Mock(spec=HttpClient)
    http.post_form = AsyncMock(return_value=(200, "is_valid:true"))
    api = _api()
    api.get_player_summary.return_value = {
        "steamid": STEAM_ID,
        "personaname": "Gordon",
        "avatarfull": "https://avatars/full.jpg",
        "profileurl": "https://steamcommunity.com/id/gordon/",
    }

    linked = await _linker(db, vault, http=http, api=api).complete_link(seeded.user.id, CALLBACK_PARAMS)

    assert linked["steam_id"] == STEAM_ID
    assert linked["display_name"] == "Gordon"
    stored = await UserCredentialRepository(db).find_by_user_and_service(seeded.user.id, "steam")
    assert stored.credential_type == "steam_openid"
    assert stored.has_valid_token is True
    assert STEAM_ID not in stored.encrypted_credentials
    assert vault.decrypt(stored.encrypted_credentials)["steam_id"] == STEAM_ID


@pytest.mark.asyncio
async def test_link_without_profile_is_validation_error(db, vault, seeded):
    api = _api()
    api.get_player_summary.side_effect = RuntimeError("steam down")

    with pytest.raises(ValidationError, match="profile"):
        await _linker(db, vault, api=api).link_account(seeded.user.id, STEAM_ID)

    assert await UserCredentialRepository(db).find_by_user_and_service(seeded.user.id, "steam") is None


@pytest.mark.asyncio
async def test_unlink_removes_credential(db, vault, seeded, store_credential):
    await store_credential(seeded.user.id, "steam", {"steam_id": STEAM_ID}, credential_type="steam_openid")
    linker = _linker(db, vault)

    await linker.unlink_account(seeded.user.id)

    assert await UserCredentialRepository(db).find_by_user_and_service(seeded.user.id, "steam") is None
    with pytest.raises(NotFoundError):
        await linker.unlink_account(seeded.user.id)
