# backend/app/api/v1/endpoints/retroachievements.py
from fastapi import APIRouter, Depends, Response, status

from backend.app.api import deps
from backend.app.integrations.retroachievements import RetroAchievementsAccounts
from backend.app.models.user import User
from backend.app.schemas.credential import RetroAchievementsCredentialsRequest

router = APIRouter()


@router.post("/credentials")
async def save_retroachievements_credentials(
        creds_in: RetroAchievementsCredentialsRequest,
        current_user: User = Depends(deps.get_current_user),
        accounts: RetroAchievementsAccounts = Depends(deps.get_retroachievements_accounts),
):
    await accounts.save_credentials(current_user.id, creds_in.username, creds_in.api_key)
    return {"status": "saved", "username": creds_in.username}


@router.delete("/credentials", status_code=status.HTTP_204_NO_CONTENT)
async def delete_retroachievements_credentials(
        current_user: User = Depends(deps.get_current_user),
        accounts: RetroAchievementsAccounts = Depends(deps.get_retroachievements_accounts),
):
    await accounts.delete_credentials(current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/validate")
async def validate_retroachievements_credentials(
        creds_in: RetroAchievementsCredentialsRequest,
        current_user: User = Depends(deps.get_current_user),
        accounts: RetroAchievementsAccounts = Depends(deps.get_retroachievements_accounts),
):
    """Check a username/API key pair against the profile endpoint without storing it."""
    valid = await accounts.validate_credentials(creds_in.username, creds_in.api_key)
    return {"valid": valid}
