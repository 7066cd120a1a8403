from typing import Any, Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from fastapi_sso.sso.base import OpenID, SSOBase, SSOLoginError
from fastapi_sso.sso.facebook import FacebookSSO
from fastapi_sso.sso.google import GoogleSSO

from app.api.deps import get_current_user, get_repo, login_session
from app.core.config import settings
from app.core.errors import ValidationError
from app.core.providers import Provider
from app.repositories.user_repo import UserRepository
from app.schemas.auth import AuthResponse, LogoutResponse
from app.schemas.user import ProviderProfile, UserPublic, UserRecord
from app.services import apple
from app.services.auth import AuthFailure, AuthService, is_valid_email, normalize_email, sanitize_return_to
from app.services.identity import IdentityService
from app.utils.logger import auth_logger

router = APIRouter()

DEFAULT_REDIRECT = "/profile"


def _callback_url(provider: Provider) -> str:
    return settings.callback_url(f"{settings.API_V1_PREFIX}/auth/{provider.value}/callback")


def _google_sso() -> GoogleSSO:
    if not settings.google_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Google sign-in is not configured")
    return GoogleSSO(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        redirect_uri=_callback_url(Provider.GOOGLE),
        allow_insecure_http=not settings.is_production,
    )


def _facebook_sso() -> FacebookSSO:
    if not settings.facebook_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Facebook sign-in is not configured")
    return FacebookSSO(
        client_id=settings.FACEBOOK_CLIENT_ID,
        client_secret=settings.FACEBOOK_CLIENT_SECRET,
        redirect_uri=_callback_url(Provider.FACEBOOK),
        allow_insecure_http=not settings.is_production,
    )


def _profile_from_openid(openid: OpenID) -> ProviderProfile:
    """Reshape fastapi-sso's OpenID into the provider profile the identity service expects."""
    return ProviderProfile(
        id=openid.id,
        display_name=openid.display_name
        or " ".join(p for p in (openid.first_name, openid.last_name) if p)
        or None,
        emails=[{"value": openid.email}] if openid.email else [],
        photos=[{"value": openid.picture}] if openid.picture else [],
        raw_json={"email": openid.email, "picture": openid.picture},
    )


def _pop_return_to(request: Request, explicit: Optional[str] = None) -> str:
    stored = request.session.pop("return_to", None)
    return sanitize_return_to(explicit) or sanitize_return_to(stored) or DEFAULT_REDIRECT


def _login_error_redirect(reason: str) -> RedirectResponse:
    return RedirectResponse(url=f"/?auth=login&error={reason}", status_code=status.HTTP_302_FOUND)


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=AuthResponse)
def register(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    name: Optional[str] = Form(None),
    returnTo: Optional[str] = Form(None),
    repo: UserRepository = Depends(get_repo),
) -> Any:
    """
    Register a new user with email and password, then sign them in.

    Takes the login modal's form post. A duplicate email answers 409.
    """
    user = AuthService.register_local_user(email, password, repo, name=name)
    login_session(request, user)
    return AuthResponse(
        redirect=_pop_return_to(request, returnTo),
        user=UserPublic.model_validate(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    returnTo: Optional[str] = Form(None),
    repo: UserRepository = Depends(get_repo),
) -> Any:
    """
    Authenticate a user with email and password.
    """
    clean_email = normalize_email(email)
    if not clean_email or not password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and password are required")
    if not is_valid_email(clean_email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please enter a valid email address")

    result = AuthService.verify_local_credentials(clean_email, password, repo)
    if isinstance(result, AuthFailure):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=result.reason)

    login_session(request, result)
    return AuthResponse(
        redirect=_pop_return_to(request, returnTo),
        user=UserPublic.model_validate(result),
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(request: Request) -> Any:
    request.session.clear()
    return LogoutResponse()


@router.get("/me", response_model=UserPublic)
def me(current_user: UserRecord = Depends(get_current_user)) -> Any:
    return UserPublic.model_validate(current_user)


async def _sso_login(request: Request, sso: SSOBase, return_to: Optional[str]) -> RedirectResponse:
    # Remember where to land after the provider sends the user back
    if return_to:
        request.session["return_to"] = return_to
    async with sso:
        return await sso.get_login_redirect()


async def _sso_callback(
    request: Request, sso: SSOBase, provider: Provider, repo: UserRepository
) -> RedirectResponse:
    try:
        async with sso:
            openid = await sso.verify_and_process(request)
    except SSOLoginError as e:
        auth_logger.warning("OAuth callback rejected", context=provider.value, error=str(e))
        return _login_error_redirect("authentication_failed")

    if not openid:
        return _login_error_redirect("authentication_failed")

    try:
        user = IdentityService.resolve_social_login(provider, _profile_from_openid(openid), repo)
    except ValidationError as e:
        auth_logger.warning("Unusable provider profile", context=provider.value, reason=e.message)
        return _login_error_redirect("profile")

    login_session(request, user)
    return RedirectResponse(url=_pop_return_to(request), status_code=status.HTTP_302_FOUND)


@router.get("/google/login")
async def google_login(request: Request, returnTo: Optional[str] = None) -> Any:
    """Redirect the browser to Google's consent screen."""
    return await _sso_login(request, _google_sso(), returnTo)


@router.get("/google/callback")
async def google_callback(request: Request, repo: UserRepository = Depends(get_repo)) -> Any:
    """Handle Google's redirect, resolve the account and start a session."""
    return await _sso_callback(request, _google_sso(), Provider.GOOGLE, repo)


@router.get("/facebook/login")
async def facebook_login(request: Request, returnTo: Optional[str] = None) -> Any:
    """Redirect the browser to Facebook's login dialog."""
    return await _sso_login(request, _facebook_sso(), returnTo)


@router.get("/facebook/callback")
async def facebook_callback(request: Request, repo: UserRepository = Depends(get_repo)) -> Any:
    """Handle Facebook's redirect, resolve the account and start a session."""
    return await _sso_callback(request, _facebook_sso(), Provider.FACEBOOK, repo)


def _require_apple() -> None:
    if not settings.apple_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Apple sign-in is not configured")


@router.get("/apple/login")
def apple_login(returnTo: Optional[str] = None) -> Any:
    """Redirect to Apple; the login state is signed rather than stored in the session."""
    _require_apple()
    state = apple.sign_state(sanitize_return_to(returnTo))
    return RedirectResponse(url=apple.build_authorize_url(state), status_code=status.HTTP_302_FOUND)


@router.post("/apple/callback")
def apple_callback(
    request: Request,
    id_token: str = Form(...),
    state: str = Form(...),
    user: Optional[str] = Form(None),
    repo: UserRepository = Depends(get_repo),
) -> Any:
    """
    Apple form-posts the id_token here. The `user` field (name, email) is only
    sent on the very first consent.
    """
    _require_apple()
    try:
        login_state = apple.load_state(state)
        claims = apple.verify_identity_token(id_token)
        account = IdentityService.resolve_social_login(
            Provider.APPLE, apple.profile_from_apple(claims, user), repo
        )
    except ValidationError as e:
        auth_logger.warning("Apple sign-in rejected", context="apple", reason=e.message)
        return _login_error_redirect("authentication_failed")

    login_session(request, account)
    # 303 turns Apple's POST into a GET on our page
    return RedirectResponse(
        url=_pop_return_to(request, login_state.get("return_to")),
        status_code=status.HTTP_303_SEE_OTHER,
    )
