"""
Facebook signed requests and the data-deletion callback.

A signed request is "<signature>.<payload>", both base64url without padding.
The signature is HMAC-SHA256 over the *encoded* payload segment, keyed with
the app secret.
"""

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

from app.core.errors import IntegrityError, SignedRequestError
from app.core.providers import Provider
from app.repositories.user_repo import UserRepository
from app.services.auth import AuthService
from app.utils.logger import facebook_logger

SIGNED_REQUEST_ALGORITHM = "HMAC-SHA256"
CONFIRMATION_CODE_LENGTH = 32
# Tolerated clock skew for issued_at values slightly in the future
MAX_CLOCK_SKEW_SECONDS = 300


@dataclass(frozen=True)
class DeletionConfirmation:
    url: str
    confirmation_code: str

    def as_response(self) -> Dict[str, str]:
        return {"url": self.url, "confirmation_code": self.confirmation_code}


def base64url_decode(segment: str) -> bytes:
    """Decode base64url text that may have had its padding stripped."""
    standard = segment.replace("-", "+").replace("_", "/")
    standard += "=" * (-len(standard) % 4)
    try:
        return base64.b64decode(standard, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignedRequestError("Malformed signed_request encoding") from e


def base64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _sign(encoded_payload: str, app_secret: str) -> bytes:
    return hmac.new(app_secret.encode("utf-8"), encoded_payload.encode("ascii"), hashlib.sha256).digest()


def encode_signed_request(payload: Dict[str, Any], app_secret: str) -> str:
    """Produce a signed request the way Facebook does."""
    payload = {"algorithm": SIGNED_REQUEST_ALGORITHM, **payload}
    encoded_payload = base64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{base64url_encode(_sign(encoded_payload, app_secret))}.{encoded_payload}"


def parse_signed_request(
    signed_request: str,
    app_secret: str,
    max_age_seconds: Optional[int] = None,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Verify and decode a signed request.

    Args:
        signed_request: Raw "<signature>.<payload>" string
        app_secret: Facebook app secret (HMAC key)
        max_age_seconds: Reject payloads whose issued_at is older than this; None disables the check
        now: Current epoch seconds, for tests

    Returns:
        The decoded payload. It always contains `user_id`.

    Raises:
        SignedRequestError: malformed, wrongly signed, wrong algorithm, stale or missing user_id
        IntegrityError: no app secret configured
    """
    if not app_secret:
        raise IntegrityError("FACEBOOK_CLIENT_SECRET missing")

    encoded_sig, _, encoded_payload = str(signed_request or "").partition(".")
    if not encoded_sig or not encoded_payload:
        raise SignedRequestError("Malformed signed_request")

    signature = base64url_decode(encoded_sig)
    payload_bytes = base64url_decode(encoded_payload)

    expected = _sign(encoded_payload, app_secret)
    if len(signature) != len(expected) or not hmac.compare_digest(signature, expected):
        raise SignedRequestError("Bad signature")

    try:
        data = json.loads(payload_bytes.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise SignedRequestError("Signed request payload is not JSON") from e
    if not isinstance(data, dict):
        raise SignedRequestError("Signed request payload is not an object")

    algorithm = data.get("algorithm")
    if algorithm is not None and str(algorithm).upper() != SIGNED_REQUEST_ALGORITHM:
        raise SignedRequestError(f"Unexpected algorithm {algorithm!r}")

    issued_at = data.get("issued_at")
    if issued_at is not None and max_age_seconds is not None:
        try:
            issued_at = float(issued_at)
        except (TypeError, ValueError) as e:
            raise SignedRequestError("issued_at is not a timestamp") from e
        current = time.time() if now is None else now
        if current - issued_at > max_age_seconds:
            raise SignedRequestError("Signed request is stale")
        if issued_at - current > MAX_CLOCK_SKEW_SECONDS:
            raise SignedRequestError("Signed request issued in the future")

    if not data.get("user_id"):
        raise SignedRequestError("user_id missing in signed_request")
    return data


class DeletionService:
    """Handles Facebook's user data-deletion callback."""

    @staticmethod
    def new_confirmation(status_base_url: str) -> DeletionConfirmation:
        # Random and unrelated to the user, so the code leaks nothing if shared
        code = AuthService.generate_random_string(CONFIRMATION_CODE_LENGTH)
        return DeletionConfirmation(
            url=f"{status_base_url}?ticket={quote(code)}",
            confirmation_code=code,
        )

    @classmethod
    def process_deletion_request(
        cls,
        signed_request: str,
        repo: UserRepository,
        app_secret: str,
        status_base_url: str,
        max_age_seconds: Optional[int] = None,
        now: Optional[float] = None,
    ) -> DeletionConfirmation:
        """
        Verify the request and delete the Facebook-linked account.

        Always returns a fresh confirmation, whether or not verification or
        deletion worked: Facebook treats anything other than 200 with
        {url, confirmation_code} as a hard failure. Errors go to the server log only.
        """
        confirmation = cls.new_confirmation(status_base_url)
        try:
            data = parse_signed_request(signed_request, app_secret, max_age_seconds=max_age_seconds, now=now)
            removed = repo.delete_by_provider_id(Provider.FACEBOOK, str(data["user_id"]))
            facebook_logger.info(
                "Data deletion processed",
                context="deletion",
                removed=removed,
                confirmation_code=confirmation.confirmation_code,
            )
        except SignedRequestError as e:
            facebook_logger.warning(
                "Rejected data deletion request",
                context="deletion",
                reason=e.message,
                confirmation_code=confirmation.confirmation_code,
            )
        except Exception as e:
            facebook_logger.error(
                "Data deletion failed",
                context="deletion",
                error=f"{type(e).__name__}: {e}",
                confirmation_code=confirmation.confirmation_code,
            )
        return confirmation
