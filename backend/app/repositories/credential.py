# backend/app/repositories/credential.py
"""
Storage for encrypted per-user API credentials.

Every query is scoped by user_id; a credential is never looked up by
service alone.
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.errors import NotFoundError
from backend.app.db.base import transaction
from backend.app.db.upsert import upsert_insert
from backend.app.models.user_credential import UserCredential


class UserCredentialRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_user_and_service(self, user_id: int, service: str) -> Optional[UserCredential]:
        result = await self.db.execute(
            select(UserCredential).where(
                UserCredential.user_id == user_id,
                UserCredential.service == service,
            )
        )
        return result.scalars().first()

    async def find_by_user(self, user_id: int) -> List[UserCredential]:
        result = await self.db.execute(
            select(UserCredential)
            .where(UserCredential.user_id == user_id)
            .order_by(UserCredential.service)
        )
        return list(result.scalars().all())

    async def upsert(
        self,
        user_id: int,
        service: str,
        credential_type: str,
        encrypted_credentials: str,
        is_active: bool = True,
        has_valid_token: bool = False,
        token_expires_at: Optional[datetime] = None,
    ) -> UserCredential:
        """Insert or overwrite the (user, service) credential."""
        values = {
            "credential_type": credential_type,
            "encrypted_credentials": encrypted_credentials,
            "is_active": is_active,
            "has_valid_token": has_valid_token,
            "token_expires_at": token_expires_at,
            "updated_at": datetime.now(timezone.utc),
        }
        stmt = upsert_insert(self.db, UserCredential).values(
            user_id=user_id,
            service=service,
            last_validated_at=None,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "service"],
            set_=values,
        ).returning(UserCredential)

        async with transaction(self.db):
            result = await self.db.scalars(stmt, execution_options={"populate_existing": True})
            credential = result.one()
        return credential

    async def delete(self, user_id: int, service: str) -> None:
        async with transaction(self.db):
            result = await self.db.execute(
                delete(UserCredential)
                .where(
                    UserCredential.user_id == user_id,
                    UserCredential.service == service,
                )
                .returning(UserCredential.id)
            )
            deleted = result.scalars().all()

        if not deleted:
            raise NotFoundError("Credential", service)

    async def update_validation_status(
        self,
        user_id: int,
        service: str,
        has_valid_token: bool,
        token_expires_at: Optional[datetime] = None,
    ) -> Optional[UserCredential]:
        now = datetime.now(timezone.utc)
        async with transaction(self.db):
            result = await self.db.scalars(
                update(UserCredential)
                .where(
                    UserCredential.user_id == user_id,
                    UserCredential.service == service,
                )
                .values(
                    has_valid_token=has_valid_token,
                    token_expires_at=token_expires_at,
                    last_validated_at=now,
                    updated_at=now,
                )
                .returning(UserCredential),
                execution_options={"populate_existing": True},
            )
            credential = result.first()
        return credential
