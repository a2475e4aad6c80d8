# backend/app/api/v1/endpoints/auth.py
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.errors import ConflictError, UnauthorizedError
from backend.app.db.base import get_db
from backend.app.models.user import User
from backend.app.schemas.user import Token, UserCreate, UserResponse
from backend.app.security import hashing, jwt

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user_in: UserCreate, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.username == user_in.username))
    if result.scalars().first():
        raise ConflictError("Username already exists")

    new_user = User(
        username=user_in.username,
        hashed_password=hashing.get_password_hash(user_in.password),
    )
    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)
    logger.info("Registered user %s", new_user.id)
    return new_user


@router.post("/login", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.username == form_data.username))
    user = result.scalars().first()

    if not user or not user.is_active or not hashing.verify_password(form_data.password, user.hashed_password):
        raise UnauthorizedError("Incorrect username or password")

    access_token = jwt.create_access_token(
        data={"sub": user.username},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {"access_token": access_token, "token_type": "bearer"}
