from fastapi import APIRouter

from march.api.routes import archive

api_router = APIRouter()
api_router.include_router(archive.router)
