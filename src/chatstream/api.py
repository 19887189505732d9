from fastapi import APIRouter, Depends

from .database import DatabaseManager
from .manager_singleton import ManagerSingleton
from .sessions.api import router as sessions_router
from .user_config.api import router as config_router

router = APIRouter()
router.include_router(sessions_router)
router.include_router(config_router)


@router.get("/health")
async def health_check(db_manager: DatabaseManager = Depends(ManagerSingleton.get_database_manager)):
    return {"status": "healthy", "database": await db_manager.get_database_info()}
