"""
Typed payment credentials.

Raw credential JSON (OAuth payloads and manually entered platform keys) is
validated into these models once, at the resolver boundary. Everything past
the resolver works with ``ResolvedCredential``.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from ._strict_base import StrictModel, StrictRequestModel


def _require_prefix(value: str, prefix: str, label: str, *, allow_empty: bool = False) -> str:
    if allow_empty and value == "":
        return value
    if not value.startswith(prefix):
        raise ValueError(f"{label} must start with '{prefix}'")
    return value


class OAuthStripeKeys(BaseModel):
    """Payload stored on a Credential row after a Stripe Connect OAuth handshake."""

    # Connect responses carry many more fields; only these are used.
    model_config = ConfigDict(extra="ignore")

    stripe_user_id: str = Field(..., min_length=1)
    stripe_publishable_key: str = ""
    default_currency: str = "usd"


class AppKeys(StrictRequestModel):
    """Manually configured platform keys for the Stripe app."""

    client_id: str = Field(default="", description="Connect client id (ca_...), optional")
    client_secret: str = Field(..., description="Secret API key (sk_...)")
    public_key: str = Field(..., description="Publishable key (pk_...)")
    webhook_secret: str = Field(default="", description="Webhook signing secret (whsec_...)")
    payment_fee_percentage: float = Field(default=0, ge=0, le=1)
    payment_fee_fixed: int = Field(default=0, ge=0)

    @field_validator("client_id")
    @classmethod
    def _check_client_id(cls, v: str) -> str:
        return _require_prefix(v, "ca_", "client_id", allow_empty=True)

    @field_validator("client_secret")
    @classmethod
    def _check_client_secret(cls, v: str) -> str:
        return _require_prefix(v, "sk_", "client_secret")

    @field_validator("public_key")
    @classmethod
    def _check_public_key(cls, v: str) -> str:
        return _require_prefix(v, "pk_", "public_key")

    @field_validator("webhook_secret")
    @classmethod
    def _check_webhook_secret(cls, v: str) -> str:
        return _require_prefix(v, "whsec_", "webhook_secret", allow_empty=True)


class AppKeysResponse(StrictModel):
    """Masked view of the platform keys."""

    enabled: bool
    client_id: str
    client_secret: str
    public_key: str
    webhook_secret: str
    payment_fee_percentage: float
    payment_fee_fixed: int


class PlatformCredential(BaseModel):
    """Platform-wide manual configuration. Calls run on the platform account itself."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["platform"] = "platform"
    secret_key: SecretStr
    publishable_key: str
    webhook_secret: Optional[SecretStr] = None
    client_id: str = ""
    payment_fee_percentage: float = 0
    payment_fee_fixed: int = 0

    @property
    def stripe_account(self) -> Optional[str]:
        return None

    @property
    def credential_id(self) -> Optional[int]:
        return None


class OAuthCredential(BaseModel):
    """A user's or team's connected Stripe account."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["oauth"] = "oauth"
    credential_id: int
    stripe_user_id: str
    stripe_publishable_key: str = ""
    default_currency: str = "usd"
    payment_fee_percentage: float = 0
    payment_fee_fixed: int = 0

    @property
    def stripe_account(self) -> Optional[str]:
        return self.stripe_user_id

    @property
    def publishable_key(self) -> str:
        return self.stripe_publishable_key


ResolvedCredential = Annotated[
    Union[PlatformCredential, OAuthCredential],
    Field(discriminator="kind"),
]
