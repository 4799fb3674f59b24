"""
app/api/routers package marker.
"""

from app.api.routers.credits import router as credits_router
from app.api.routers.scrape import router as scrape_router

__all__ = [
    "credits_router",
    "scrape_router",
]
