from fastapi import APIRouter

from touchin.api.routes import presence

api_router = APIRouter(prefix="/v1")

api_router.include_router(presence.router, prefix="/presence", tags=["presence"])
api_router.include_router(presence.dwell_router, prefix="/dwell", tags=["dwell"])
