"""ClassTest - API v1 Router."""
from fastapi import APIRouter

from classtest.api.v1.retests import router as retests_router
from classtest.api.v1.submissions import router as submissions_router
from classtest.api.v1.results import router as results_router

api_router = APIRouter()

api_router.include_router(retests_router)
api_router.include_router(submissions_router)
api_router.include_router(results_router)
