"""Top-level API router."""

from fastapi import APIRouter

from gestao_obras.api.routes.clients import router as clients_router
from gestao_obras.api.routes.exports import router as exports_router
from gestao_obras.api.routes.health import router as health_router
from gestao_obras.api.routes.me import router as me_router
from gestao_obras.api.routes.portal import router as portal_router
from gestao_obras.api.routes.projects import router as projects_router
from gestao_obras.api.routes.reports import router as reports_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(me_router)
api_router.include_router(clients_router)
api_router.include_router(projects_router)
api_router.include_router(reports_router)
api_router.include_router(exports_router)
api_router.include_router(portal_router)
