from fastapi import APIRouter

from wa_gateway.api.routes import admin, instances, messages, realtime, webhooks

api_router = APIRouter()

# API routes (all have /api/v1 prefix from the app factory)
api_router.include_router(instances.router)
api_router.include_router(realtime.router)
api_router.include_router(messages.router)
api_router.include_router(webhooks.router)
api_router.include_router(admin.router)
