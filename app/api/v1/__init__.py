from fastapi import APIRouter

from app.api.v1.generations import router as generations_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(generations_router)
