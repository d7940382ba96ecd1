"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from ticketqueue.api.routes import admin, events, purchases, queue, tickets

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(queue.router)
api_router.include_router(purchases.router)
api_router.include_router(tickets.router)
api_router.include_router(admin.router)
