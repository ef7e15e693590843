from fastapi import APIRouter

from .runner.api import router as runs_router
from .sessions.api import backup_router
from .sessions.api import router as sessions_router
from .user_config.api import router as config_router

router = APIRouter()
router.include_router(sessions_router)
router.include_router(backup_router)
router.include_router(runs_router)
router.include_router(config_router, prefix="/config")


@router.get("/health")
async def health_check():
    return {"status": "healthy"}
