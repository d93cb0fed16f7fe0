"""
Upstream credential composition.
"""

import base64
from dataclasses import dataclass
from typing import Optional

from shared.logging import get_logger
from .tokens.models import CredentialType, UpstreamAuthentication

logger = get_logger("introspection.credentials")


@dataclass(frozen=True)
class UpstreamCredential:
    """Header the proxy attaches when forwarding upstream."""
    auth_type: CredentialType
    header: str = ""
    token: str = ""


NO_CREDENTIAL = UpstreamCredential(auth_type=CredentialType.NONE)


def compose_credential(authentication: Optional[UpstreamAuthentication]) -> UpstreamCredential:
    """Build the upstream Authorization header value for a token's credential spec."""
    if authentication is None or not authentication.type:
        logger.debug("No upstream authentication in token, forwarding without credential")
        return NO_CREDENTIAL

    auth_type = authentication.type.lower()

    if auth_type in (CredentialType.BEARER.value, CredentialType.OAUTH.value):
        token = authentication.token or ""
        if not token:
            logger.debug("Bearer authentication without token, forwarding without credential")
            return NO_CREDENTIAL
        return UpstreamCredential(
            auth_type=CredentialType(auth_type),
            header=f"Bearer {token}",
            token=token
        )

    if auth_type == CredentialType.BASIC.value:
        userpass = f"{authentication.username or ''}:{authentication.password or ''}"
        encoded = base64.b64encode(userpass.encode("utf-8")).decode("ascii")
        return UpstreamCredential(auth_type=CredentialType.BASIC, header=f"Basic {encoded}")

    logger.debug("Unrecognized upstream authentication type", auth_type=authentication.type)
    return NO_CREDENTIAL
