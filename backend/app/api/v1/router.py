# backend/app/api/v1/router.py
from fastapi import APIRouter
from backend.app.api.v1.endpoints import achievements, auth, credentials, retroachievements, steam

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(achievements.router, prefix="/achievements", tags=["achievements"])
api_router.include_router(steam.router, prefix="/steam", tags=["steam"])
api_router.include_router(retroachievements.router, prefix="/retroachievements", tags=["retroachievements"])
api_router.include_router(credentials.router, prefix="/credentials", tags=["credentials"])
