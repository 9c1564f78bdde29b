"""Canonical Pydantic models shared across all maascli modules.

The models fall into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`OAuthSettings`, :class:`CompanionSettings`,
    :class:`RoutingSettings`, and :class:`GlobalConfig`.

**Auth state models** -- produced during login and persisted per profile:
    :class:`PKCECodes`, :class:`TokenResponse`, the :data:`Credential`
    tagged union (:class:`VendorKeyCredential`, :class:`JWTCredential`,
    :class:`OAuthCredential`), and :class:`AuthFailureState`.

**Routing models** -- produced by capability detection and the router:
    :class:`CLICapabilities`, :class:`Outcome`, and :class:`OperationResult`.

State and result models are frozen: a new instance is built for every
change so that callers can hold on to snapshots safely.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# --- Configuration ---


class OAuthSettings(BaseModel):
    """OAuth2 authorization-code settings for the browser login flow."""

    auth_base: str = Field(
        default="https://auth.lanonasis.com",
        description="Base URL of the authorization server",
    )
    client_id: str = Field(default="lanonasis-cli", description="Public OAuth client id")
    scope: str = Field(
        default="memories:read memories:write mcp:connect api:access",
        description="Space-separated scopes requested at login",
    )
    callback_host: str = Field(default="localhost")
    callback_port: int = Field(default=8899, ge=0, le=65535)
    callback_timeout: float = Field(
        default=300.0, gt=0, description="Seconds to wait for the browser redirect"
    )
    exchange_timeout: float = Field(
        default=5.0, gt=0, description="Seconds to wait for the token endpoint"
    )

    @property
    def authorize_url(self) -> str:
        return f"{self.auth_base.rstrip('/')}/oauth/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.auth_base.rstrip('/')}/oauth/token"

    @property
    def revoke_url(self) -> str:
        return f"{self.auth_base.rstrip('/')}/oauth/revoke"

    def redirect_uri(self, port: int | None = None) -> str:
        return f"http://{self.callback_host}:{port or self.callback_port}/callback"


class CompanionSettings(BaseModel):
    """How to find and talk to the companion executable."""

    executables: list[str] = Field(
        default_factory=lambda: ["onasis", "lanonasis"],
        description="Executable names tried in order",
    )
    min_version: str = Field(default="1.5.2", description="Minimum protocol-compliant version")
    version_timeout: float = Field(default=5.0, gt=0)
    probe_timeout: float = Field(default=3.0, gt=0)
    command_timeout: float = Field(default=30.0, gt=0)


class RoutingSettings(BaseModel):
    """Companion-first routing switches."""

    prefer_companion: bool = True
    fallback_to_api: bool = True


class GlobalConfig(BaseModel):
    """Top-level user configuration stored in ``config.json``."""

    model_config = ConfigDict(extra="allow")

    default_profile: str = Field(default="default")
    api_base: str = Field(default="https://api.lanonasis.com")
    request_timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(
        default=2, ge=0, description="Retries for idempotent API calls on 5xx/network errors"
    )
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    companion: CompanionSettings = Field(default_factory=CompanionSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)


# --- Auth state ---


class PKCECodes(BaseModel):
    """Verifier, challenge, and state for one login attempt. Never persisted."""

    model_config = ConfigDict(frozen=True)

    verifier: str
    challenge: str
    state: str


class TokenResponse(BaseModel):
    """Successful response from the token endpoint."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 3600
    token_type: str = "Bearer"
    scope: Optional[str] = None


class VendorKeyCredential(BaseModel):
    """Static ``pk_<id>.sk_<secret>`` key. No local expiry."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["vendor_key"] = "vendor_key"
    raw: str


class JWTCredential(BaseModel):
    """Opaque bearer token used as-is. No local expiry."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["jwt"] = "jwt"
    token: str


class OAuthCredential(BaseModel):
    """Access/refresh token pair obtained through the PKCE flow."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["oauth"] = "oauth"
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime


Credential = Annotated[
    Union[VendorKeyCredential, JWTCredential, OAuthCredential],
    Field(discriminator="kind"),
]
"""The active credential of a profile, discriminated on ``kind``."""

CREDENTIAL_ADAPTER: TypeAdapter[Credential] = TypeAdapter(Credential)


class AuthFailureState(BaseModel):
    """Consecutive authentication failures for a profile.

    Threaded explicitly through :class:`~maascli.auth.backoff.BackoffController`
    rather than held in a singleton.
    """

    model_config = ConfigDict(frozen=True)

    count: int = Field(default=0, ge=0)
    last_failure_at: Optional[datetime] = None


# --- Routing ---


class CLICapabilities(BaseModel):
    """Snapshot of what the companion executable can do.

    Every flag defaults to ``False`` so an empty instance is the
    conservative "no companion" answer.
    """

    model_config = ConfigDict(frozen=True)

    available: bool = False
    version: Optional[str] = None
    mcp_support: bool = False
    authenticated: bool = False
    protocol_compliant: bool = False

    @property
    def usable(self) -> bool:
        """Whether operations may be routed through the companion."""
        return self.available and self.authenticated and self.protocol_compliant


T = TypeVar("T")


class Outcome(BaseModel, Generic[T]):
    """What an operation backend returns: data on success, error text otherwise."""

    model_config = ConfigDict(frozen=True)

    data: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class OperationResult(BaseModel, Generic[T]):
    """Result of one routed operation, tagged with the path that produced it."""

    model_config = ConfigDict(frozen=True)

    data: Optional[T] = None
    error: Optional[str] = None
    source: Literal["companion", "api"]
    enhanced_channel_used: bool = False


def dump_result(result: OperationResult[Any]) -> dict[str, Any]:
    """Serialise an :class:`OperationResult` to a JSON-friendly dict."""
    return result.model_dump(mode="json")
