from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_repo
from app.core.config import settings
from app.core.errors import IntegrityError
from app.repositories.user_repo import UserRepository
from app.utils.logger import api_logger

router = APIRouter()


@router.get("/app-health")
def app_health() -> Dict[str, Any]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/store", response_model=Dict[str, Any])
def store_health(repo: UserRepository = Depends(get_repo)) -> Dict[str, Any]:
    """
    Readiness probe for the user store.

    Returns:
        dict: store backend and whether a lookup succeeded
    """
    try:
        repo.find_by_id(0)
    except IntegrityError as e:
        api_logger.error("User store health check failed", context="health", error=e.message)
        raise HTTPException(status_code=503, detail="Service unavailable")
    return {"status": "healthy", "store": settings.USER_STORE}
