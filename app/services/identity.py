"""
Social identity resolution.

Turns a provider profile into one canonical user record:

- `derive_avatar_url` picks a stable avatar URL per provider.
- `IdentityService.upsert_social_user` links logins to existing accounts,
  matching by normalized email first and by provider subject id second.

Two logins for the same person with different emails (or one without email)
end up as two accounts. Only email equality or provider-id equality merges.
"""

import re
import time
from typing import Callable, Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from app.core.config import settings
from app.core.errors import ConflictError, ValidationError
from app.core.providers import Provider
from app.repositories.user_repo import UserRepository
from app.schemas.user import ProviderProfile, SocialIdentity, UserRecord
from app.services.auth import normalize_email
from app.utils.logger import identity_logger

DEFAULT_USER_NAME = "New User"
GOOGLE_AVATAR_SIZE = 96
FACEBOOK_GRAPH_PICTURE_URL = "https://graph.facebook.com/{provider_id}/picture"

# "=s50" or "=s50-c" at the end of a Google photo path
_GOOGLE_SIZE_RE = re.compile(r"=s\d+(?=-|$)")
_GOOGLE_IMAGE_HOSTS = ("googleusercontent.com", "ggpht.com")
# Legacy file-style photos (".../photo.jpg?sz=50") are sized by query string only
_FILE_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]{2,5}$")

__all__ = [
    "DEFAULT_USER_NAME",
    "IdentityService",
    "Provider",
    "derive_avatar_url",
    "identity_from_profile",
]


def _is_google_image_host(host: str) -> bool:
    host = (host or "").lower()
    return any(host == h or host.endswith(f".{h}") for h in _GOOGLE_IMAGE_HOSTS)


def _google_avatar(profile: ProviderProfile, size: int, cache_key: str) -> Optional[str]:
    url = profile.primary_photo or profile.raw_json.get("picture")
    if not url or not isinstance(url, str):
        return None

    # Only the size token is touched; Google needs its other parameters to render
    parts = urlsplit(url)
    if _GOOGLE_SIZE_RE.search(parts.path):
        path = _GOOGLE_SIZE_RE.sub(f"=s{GOOGLE_AVATAR_SIZE}", parts.path)
    elif _is_google_image_host(parts.netloc) and not _FILE_EXTENSION_RE.search(parts.path.rsplit("/", 1)[-1]):
        path = f"{parts.path}=s{GOOGLE_AVATAR_SIZE}"
    else:
        return url
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def _facebook_avatar(profile: ProviderProfile, size: int, cache_key: str) -> Optional[str]:
    # Profile photo URLs from Facebook are short-lived lookaside links, so build from the id
    if not profile.id:
        return None
    query = urlencode({"width": size, "height": size, "v": cache_key})
    return f"{FACEBOOK_GRAPH_PICTURE_URL.format(provider_id=profile.id)}?{query}"


def _apple_avatar(profile: ProviderProfile, size: int, cache_key: str) -> Optional[str]:
    # Apple identity tokens never carry a photo
    return None


def _local_avatar(profile: ProviderProfile, size: int, cache_key: str) -> Optional[str]:
    # Uploaded avatars pass through untouched
    return profile.primary_photo


_AVATAR_DERIVERS: Dict[Provider, Callable[[ProviderProfile, int, str], Optional[str]]] = {
    Provider.GOOGLE: _google_avatar,
    Provider.FACEBOOK: _facebook_avatar,
    Provider.APPLE: _apple_avatar,
    Provider.LOCAL: _local_avatar,
}

_missing = set(Provider) - set(_AVATAR_DERIVERS)
if _missing:
    raise RuntimeError(f"No avatar rule for providers: {sorted(p.value for p in _missing)}")


def derive_avatar_url(
    provider,
    profile,
    size: Optional[int] = None,
    cache_key: Optional[str] = None,
) -> Optional[str]:
    """
    Stable avatar URL for a provider profile, or None when there is no photo.

    Args:
        provider: Provider member or its string value
        profile: ProviderProfile or a dict in the same shape
        size: Square pixel size for providers that take one (default settings.AVATAR_SIZE)
        cache_key: Cache-busting token (default: current time in ms)

    For a fixed (id, size, cache_key) the Facebook URL is always the same string.
    """
    try:
        provider = Provider(provider)
        if not isinstance(profile, ProviderProfile):
            profile = ProviderProfile.model_validate(profile or {})
        size = int(size or settings.AVATAR_SIZE)
    except (TypeError, ValueError):
        # pydantic's ValidationError is a ValueError too
        identity_logger.warning("Avatar skipped for unreadable input", context="avatar", provider=str(provider))
        return None

    if cache_key is None:
        cache_key = str(int(time.time() * 1000))
    return _AVATAR_DERIVERS[provider](profile, size, str(cache_key))


def identity_from_profile(provider, profile: ProviderProfile, avatar_url: Optional[str] = None) -> SocialIdentity:
    """Build the upsert input from a provider profile. The provider id is mandatory."""
    provider = Provider(provider)
    if not provider.is_social:
        raise ValidationError("Local accounts are not resolved from provider profiles")
    if not profile.id:
        raise ValidationError(f"{provider.value.capitalize()} profile has no id")

    return SocialIdentity(
        email=profile.primary_email,
        name=(profile.display_name or "").strip() or None,
        avatar_url=avatar_url,
        provider=provider.value,
        provider_id=str(profile.id),
    )


class IdentityService:
    """Account upsert and linking for OAuth logins."""

    @classmethod
    def upsert_social_user(cls, identity: SocialIdentity, repo: UserRepository) -> UserRecord:
        """
        Find or create the account for a social login.

        Order of precedence:
          1. Existing account with the same normalized email: backfill name,
             refresh avatar, link this provider's id.
          2. Existing account with this provider id: refresh avatar only.
          3. New account holding just this provider's id.

        Two concurrent first logins for one email both reach step 3; the loser
        gets ConflictError from the store and is retried through step 1.
        """
        provider = Provider(identity.provider)
        if not provider.is_social:
            raise ValidationError("Social upsert needs a social provider")
        if not identity.provider_id:
            raise ValidationError("Missing provider id")

        email = normalize_email(identity.email)
        name = (identity.name or "").strip() or None
        provider_id = str(identity.provider_id)

        if email:
            linked = cls._link_by_email(email, name, identity.avatar_url, provider, provider_id, repo)
            if linked:
                return linked

        existing = repo.find_by_provider_id(provider, provider_id)
        if existing:
            if identity.avatar_url and identity.avatar_url != existing.avatar_url:
                existing = repo.update(existing.id, avatar_url=identity.avatar_url) or existing
            identity_logger.info("Matched by provider id", context="upsert",
                                 provider=provider.value, user_id=existing.id)
            return existing

        try:
            user = repo.create(
                email=email,
                name=name or (email.split("@")[0] if email else DEFAULT_USER_NAME),
                avatar_url=identity.avatar_url,
                **{provider.id_field: provider_id},
            )
        except ConflictError:
            linked = cls._link_by_email(email, name, identity.avatar_url, provider, provider_id, repo)
            if linked is None:
                raise
            return linked

        identity_logger.success("Created social account", context="upsert",
                                provider=provider.value, user_id=user.id)
        return user

    @staticmethod
    def _link_by_email(email, name, avatar_url, provider: Provider, provider_id: str,
                       repo: UserRepository) -> Optional[UserRecord]:
        user = repo.find_by_email(email)
        if not user:
            return None

        changes = {provider.id_field: provider_id}
        if not user.name and name:
            changes["name"] = name
        if avatar_url:
            changes["avatar_url"] = avatar_url

        updated = repo.update(user.id, **changes)
        identity_logger.info("Matched by email", context="upsert",
                             provider=provider.value, user_id=user.id,
                             linked=getattr(user, provider.id_field) != provider_id)
        return updated or user

    @classmethod
    def resolve_social_login(cls, provider, profile, repo: UserRepository,
                             cache_key: Optional[str] = None) -> UserRecord:
        """Full OAuth callback body: derive the avatar, build the identity, upsert."""
        provider = Provider(provider)
        if not isinstance(profile, ProviderProfile):
            profile = ProviderProfile.model_validate(profile or {})

        avatar_url = derive_avatar_url(provider, profile, cache_key=cache_key)
        identity = identity_from_profile(provider, profile, avatar_url=avatar_url)
        return cls.upsert_social_user(identity, repo)
