# backend/app/api/v1/endpoints/credentials.py
from fastapi import APIRouter, Depends, Response, status

from backend.app.api import deps
from backend.app.models.user import User
from backend.app.schemas.credential import (
    ApiService,
    CredentialSaveRequest,
    CredentialSaveResponse,
    CredentialStatusResponse,
    CredentialValidateResponse,
)
from backend.app.services.credentials import CredentialService

router = APIRouter()


@router.get("/", response_model=CredentialStatusResponse)
async def list_credentials(
        current_user: User = Depends(deps.get_current_user),
        service: CredentialService = Depends(deps.get_credential_service),
):
    return await service.list_credentials(current_user.id)


@router.post("/", response_model=CredentialSaveResponse)
async def save_credentials(
        creds_in: CredentialSaveRequest,
        current_user: User = Depends(deps.get_current_user),
        service: CredentialService = Depends(deps.get_credential_service),
):
    return await service.save_credentials(current_user.id, creds_in)


@router.post("/{api_service}/validate", response_model=CredentialValidateResponse)
async def validate_credentials(
        api_service: ApiService,
        current_user: User = Depends(deps.get_current_user),
        service: CredentialService = Depends(deps.get_credential_service),
):
    return await service.validate_credentials(current_user.id, api_service)


@router.delete("/{api_service}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_credentials(
        api_service: ApiService,
        current_user: User = Depends(deps.get_current_user),
        service: CredentialService = Depends(deps.get_credential_service),
):
    await service.delete_credentials(current_user.id, api_service)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
