"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from leadrouter.api.provider_leads import router as provider_leads_router
from leadrouter.api.payouts import router as payouts_router
from leadrouter.api.scheduled_tasks import router as scheduled_tasks_router
from leadrouter.api.webhooks import router as webhooks_router
from leadrouter.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(provider_leads_router)
api_router.include_router(payouts_router)
api_router.include_router(scheduled_tasks_router)
api_router.include_router(webhooks_router)
api_router.include_router(health_router)
