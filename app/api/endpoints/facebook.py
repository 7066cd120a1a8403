from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.deps import get_repo
from app.core.config import settings
from app.repositories.user_repo import UserRepository
from app.schemas.auth import DeletionResponse, DeletionStatusResponse
from app.services.facebook import DeletionService
from app.utils.logger import facebook_logger

router = APIRouter()


async def _read_signed_request(request: Request) -> str:
    """Pull `signed_request` out of any body as text; unreadable bodies count as empty."""
    try:
        form = await request.form()
    except StarletteHTTPException as e:
        facebook_logger.warning("Unreadable data deletion body", context="deletion", error=e.detail)
        return ""

    value = form.get("signed_request")
    if isinstance(value, UploadFile):
        value = (await value.read()).decode("utf-8", errors="replace")
    return str(value or "")


@router.post("/data-deletion", response_model=DeletionResponse)
async def data_deletion(request: Request, repo: UserRepository = Depends(get_repo)) -> Any:
    """
    Facebook user data-deletion callback (application/x-www-form-urlencoded).

    Always answers 200 with {url, confirmation_code}; failures are only logged.
    The body is read by hand so that no input shape can turn into a 422.
    """
    signed_request = await _read_signed_request(request)
    confirmation = await run_in_threadpool(
        DeletionService.process_deletion_request,
        signed_request,
        repo,
        app_secret=settings.FACEBOOK_CLIENT_SECRET,
        status_base_url=settings.deletion_status_base_url,
        max_age_seconds=settings.SIGNED_REQUEST_MAX_AGE_SECONDS,
    )
    return DeletionResponse(**confirmation.as_response())


@router.get("/data-deletion/status", response_model=DeletionStatusResponse)
def data_deletion_status(ticket: str = "") -> Any:
    """Human-facing status for a confirmation code. Codes are not stored, so every ticket reads the same."""
    return DeletionStatusResponse(
        confirmation_code=ticket,
        status="received",
        message="Your data deletion request was received. Any data linked to your Facebook login has been removed.",
    )
