"""
API v1 routes.
"""

from fastapi import APIRouter

from learnpath.api.v1 import progression

router = APIRouter()

router.include_router(progression.router, tags=["Progression"])
