"""PCN Challenge Engine - API Routers"""
from .challenges import router as challenges_router

__all__ = [
    "challenges_router",
]
