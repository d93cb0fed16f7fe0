"""
Token payload and introspection response models.
"""

from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CredentialType(str, Enum):
    """Credential the gateway forwards to the upstream service."""
    BEARER = "bearer"
    OAUTH = "oauth"
    BASIC = "basic"
    NONE = "none"


class UpstreamAuthentication(BaseModel):
    """Secret material for authenticating against the upstream service."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    # Kept as a plain string so unknown types degrade to "no credential"
    type: Optional[str] = Field(None, description="bearer, oauth, basic or none")
    token: Optional[str] = Field(None, description="Bearer/OAuth token")
    username: Optional[str] = Field(None, description="Basic auth user")
    password: Optional[str] = Field(None, description="Basic auth password")


class UpstreamHeaders(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    authentication: Optional[UpstreamAuthentication] = None


class AuthorizationClaims(BaseModel):
    """Decrypted payload of an access token."""
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1, description="Consumer identity")
    did: str = Field(..., min_length=1, description="Service asset identifier")
    owner: Optional[str] = Field(None, description="Owner identity of the service")
    endpoints: List[str] = Field(default_factory=list, description="Granted endpoint templates")
    headers: Optional[UpstreamHeaders] = None
    iat: Optional[int] = None
    exp: int = Field(..., description="Expiry, seconds since epoch")
    subscription_did: Optional[str] = Field(None, alias="subscriptionDid")

    # Registered JWT claims the issuer may add
    iss: Optional[str] = None
    sub: Optional[str] = None
    aud: Optional[Union[str, List[str]]] = None
    jti: Optional[str] = None
    nbf: Optional[int] = None

    @property
    def authentication(self) -> Optional[UpstreamAuthentication]:
        return self.headers.authentication if self.headers else None

    def is_expired(self, now: float) -> bool:
        return now >= self.exp


class IntrospectionResponse(BaseModel):
    """Body returned to the proxy when a request is allowed."""
    active: bool = True
    user_id: str = Field("", description="Consumer identity, empty for open endpoints")
    owner: Optional[str] = None
    auth_type: CredentialType = CredentialType.NONE
    auth_header: str = ""
    service_token: str = ""
    upstream_host: str
    scope: str = Field(..., description="Service asset identifier")
    exp: Optional[int] = None
    iat: Optional[int] = None
