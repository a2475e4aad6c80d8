# backend/app/api/v1/endpoints/steam.py
from fastapi import APIRouter, Depends, Request, Response, status

from backend.app.api import deps
from backend.app.integrations.steam import SteamAccountLinker
from backend.app.models.user import User

router = APIRouter()


@router.get("/connect")
async def connect_steam(
        request: Request,
        current_user: User = Depends(deps.get_current_user),
        linker: SteamAccountLinker = Depends(deps.get_steam_linker),
):
    return_url = str(request.url_for("steam_callback"))
    return {"redirect_url": linker.get_login_url(return_url)}


@router.get("/callback", name="steam_callback")
async def steam_callback(
        request: Request,
        current_user: User = Depends(deps.get_current_user),
        linker: SteamAccountLinker = Depends(deps.get_steam_linker),
):
    # Verification failures are reported in the body, not as errors
    linked = await linker.complete_link(current_user.id, dict(request.query_params))
    if linked is None:
        return {"status": "failed"}

    return {
        "status": "linked",
        "steam_id": linked["steam_id"],
        "display_name": linked["display_name"],
        "avatar_url": linked["avatar_url"],
    }


@router.delete("/link", status_code=status.HTTP_204_NO_CONTENT)
async def unlink_steam(
        current_user: User = Depends(deps.get_current_user),
        linker: SteamAccountLinker = Depends(deps.get_steam_linker),
):
    await linker.unlink_account(current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
