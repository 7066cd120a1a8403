"""
Sign in with Apple.

Apple posts the id_token straight to our callback (response_mode=form_post),
so no code exchange is needed to learn who signed in. The post is cross-site,
which means the lax session cookie is not sent; the login state travels in a
signed, time-limited token instead.
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import jwt
from itsdangerous import BadSignature, URLSafeTimedSerializer

from app.core.config import settings
from app.core.errors import ValidationError
from app.schemas.user import ProviderProfile
from app.utils.logger import auth_logger

APPLE_ISSUER = "https://appleid.apple.com"
APPLE_AUTHORIZE_URL = f"{APPLE_ISSUER}/auth/authorize"
APPLE_KEYS_URL = f"{APPLE_ISSUER}/auth/keys"
STATE_MAX_AGE_SECONDS = 600

_jwks_client: Optional[jwt.PyJWKClient] = None


def _state_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.SESSION_SECRET, salt="apple-login-state")


def sign_state(return_to: Optional[str]) -> str:
    return _state_serializer().dumps({"return_to": return_to})


def load_state(state: str) -> Dict[str, Any]:
    """Return the state payload; raise ValidationError when forged or expired."""
    try:
        return _state_serializer().loads(state or "", max_age=STATE_MAX_AGE_SECONDS)
    except BadSignature as e:
        raise ValidationError("Invalid or expired Apple login state") from e


def build_authorize_url(state: str) -> str:
    params = {
        "client_id": settings.APPLE_CLIENT_ID,
        "redirect_uri": settings.callback_url(f"{settings.API_V1_PREFIX}/auth/apple/callback"),
        "response_type": "code id_token",
        "response_mode": "form_post",
        "scope": "name email",
        "state": state,
    }
    return f"{APPLE_AUTHORIZE_URL}?{urlencode(params)}"


def _get_jwks_client() -> jwt.PyJWKClient:
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = jwt.PyJWKClient(APPLE_KEYS_URL)
    return _jwks_client


def verify_identity_token(id_token: str) -> Dict[str, Any]:
    """Check signature, audience, issuer and expiry of an Apple id_token."""
    try:
        signing_key = _get_jwks_client().get_signing_key_from_jwt(id_token)
        return jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.APPLE_CLIENT_ID,
            issuer=APPLE_ISSUER,
        )
    except jwt.PyJWTError as e:
        auth_logger.warning("Apple id_token rejected", context="apple", error=str(e))
        raise ValidationError("Invalid Apple identity token") from e


def profile_from_apple(claims: Dict[str, Any], user_json: Optional[str] = None) -> ProviderProfile:
    """
    Map id_token claims (+ the `user` form field Apple sends on first consent only)
    to a ProviderProfile. Apple never provides a photo.
    """
    display_name = None
    email = claims.get("email")
    if user_json:
        try:
            user = json.loads(user_json)
        except ValueError:
            user = None
        if isinstance(user, dict):
            name = user.get("name")
            if isinstance(name, dict):
                parts = [name.get("firstName"), name.get("lastName")]
                display_name = " ".join(p for p in parts if p) or None
            email = email or user.get("email")

    return ProviderProfile(
        id=claims.get("sub"),
        display_name=display_name,
        emails=[{"value": email}] if email else [],
        raw_json=claims,
    )
