"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from whatsrelay.api.connection import router as connection_router
from whatsrelay.api.messages import router as messages_router
from whatsrelay.api.webhook_admin import router as webhook_admin_router
from whatsrelay.api.inbound import router as inbound_router
from whatsrelay.api.dashboard import router as dashboard_router
from whatsrelay.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(connection_router)
api_router.include_router(messages_router)
api_router.include_router(webhook_admin_router)
api_router.include_router(inbound_router)
api_router.include_router(dashboard_router)
api_router.include_router(health_router)
