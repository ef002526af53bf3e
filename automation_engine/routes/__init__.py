"""FastAPI routes for the automation engine."""

from fastapi import APIRouter

from .workflows import router as workflows_router
from .triggers import router as triggers_router
from .runs import router as runs_router
from .webhooks import router as webhook_router

api_router = APIRouter(prefix="/api")
api_router.include_router(workflows_router, tags=["Workflows"])
api_router.include_router(triggers_router, tags=["Triggers"])
api_router.include_router(runs_router, tags=["Runs"])

__all__ = [
    "api_router",
    "webhook_router",
]
