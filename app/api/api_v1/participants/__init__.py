"""
Participant Workflow API Package
"""
from fastapi import APIRouter

# Import the endpoints module before binding the package router so the
# submodule attribute does not replace it
from app.api.api_v1.participants.router import router as participant_endpoints

# Create main router with prefix
router = APIRouter(prefix="/packages/participant", tags=["participants"])
router.include_router(participant_endpoints)

__all__ = ["router"]
