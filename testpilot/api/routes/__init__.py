from fastapi import APIRouter
from testpilot.api.routes import environments, health, proxy, templates

api_router = APIRouter()

# Include all route modules
api_router.include_router(health.router)
api_router.include_router(templates.router)
api_router.include_router(environments.router)
api_router.include_router(proxy.router)
