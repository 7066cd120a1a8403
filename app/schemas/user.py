from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserRecord(BaseModel):
    """Canonical, provider-agnostic user record as returned by every store."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None
    password_hash: Optional[str] = None
    avatar_url: Optional[str] = None
    google_id: Optional[str] = None
    facebook_id: Optional[str] = None
    apple_id: Optional[str] = None
    created_at: datetime

    @property
    def has_credentials(self) -> bool:
        """A record is loginable through a password or at least one provider id."""
        return bool(self.password_hash or self.google_id or self.facebook_id or self.apple_id)


class UserPublic(BaseModel):
    """Fields that are safe to send to the browser."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None


class ProfileValue(BaseModel):
    value: Optional[str] = None


class ProviderProfile(BaseModel):
    """
    Profile handed over by an OAuth client after the token exchange.

    Mirrors the common `{id, displayName, emails, photos, _json}` shape;
    every field except `id` may be missing depending on the provider.
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    emails: List[ProfileValue] = Field(default_factory=list)
    photos: List[ProfileValue] = Field(default_factory=list)
    raw_json: Dict[str, Any] = Field(default_factory=dict, alias="_json")

    @field_validator("emails", "photos", mode="before")
    @classmethod
    def none_as_empty_list(cls, value):
        return [] if value is None else value

    @field_validator("raw_json", mode="before")
    @classmethod
    def none_as_empty_dict(cls, value):
        return {} if value is None else value

    @property
    def primary_email(self) -> Optional[str]:
        if self.emails and self.emails[0].value:
            return self.emails[0].value
        email = self.raw_json.get("email")
        return email if isinstance(email, str) else None

    @property
    def primary_photo(self) -> Optional[str]:
        if self.photos and self.photos[0].value:
            return self.photos[0].value
        return None


class SocialIdentity(BaseModel):
    """Input of the social upsert: one authenticated provider identity."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    provider: str
    provider_id: str
