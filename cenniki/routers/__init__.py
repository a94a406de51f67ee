"""
API routers for the application.
"""

from fastapi import APIRouter
from cenniki.routers import login, producer, scheduled_change

api_router = APIRouter()

# Include routers
api_router.include_router(login.router)  # Administrators & JWT login
api_router.include_router(producer.router)  # Producer configuration & catalog documents
api_router.include_router(scheduled_change.router)  # Scheduled price & factor changes

__all__ = ["api_router", "login", "producer", "scheduled_change"]
