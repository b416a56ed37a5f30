from fastapi import APIRouter
from .workspaces import router as workspaces_router
from .runs import router as runs_router
from .deliveries import router as deliveries_router
from .standups import router as standups_router
from .slack import router as slack_router

api_router = APIRouter()

# Include all sub-routers
api_router.include_router(workspaces_router, prefix="/workspaces", tags=["workspaces"])
api_router.include_router(runs_router, prefix="/runs", tags=["runs"])
api_router.include_router(deliveries_router, prefix="/deliveries", tags=["deliveries"])
api_router.include_router(standups_router, prefix="/standups", tags=["standups"])
api_router.include_router(slack_router, prefix="/slack", tags=["slack"])
