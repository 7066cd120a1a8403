from enum import Enum


class Provider(str, Enum):
    """Identity issuers an account can authenticate through."""

    GOOGLE = "google"
    FACEBOOK = "facebook"
    APPLE = "apple"
    LOCAL = "local"

    @property
    def id_field(self) -> str:
        """User-record column holding this provider's subject id."""
        if self is Provider.LOCAL:
            raise ValueError("Local accounts have no provider id field")
        return f"{self.value}_id"

    @property
    def is_social(self) -> bool:
        return self is not Provider.LOCAL


SOCIAL_PROVIDERS = tuple(p for p in Provider if p.is_social)
