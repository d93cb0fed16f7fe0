"""
Access token codec.

Tokens are compact JWE strings (``dir`` key management) encrypted by the node
that sells access, with a secret phrase shared with this service.
"""

import json
from typing import Optional

from jose import jwe
from jose.exceptions import JOSEError
from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.errors import InvalidTokenError
from .models import AuthorizationClaims


def derive_key(secret_phrase: str) -> bytes:
    """Derive the content encryption key from the shared secret phrase.

    The issuing node builds its key with one byte per character, holding the
    character's decimal digit value; anything that is not a digit becomes 0.
    """
    return bytes(int(ch) if ch.isdigit() and ch.isascii() else 0 for ch in secret_phrase)


def extract_token(authorization_header: Optional[str]) -> str:
    """Take the token out of ``<scheme> <token>`` or a bare token."""
    if not authorization_header or not authorization_header.strip():
        raise InvalidTokenError("Empty authorization header")

    parts = authorization_header.strip().split()
    return parts[1] if len(parts) > 1 else parts[0]


class TokenCodec:
    """Decrypts and validates access tokens."""

    def __init__(self, secret_phrase: str):
        self._key = derive_key(secret_phrase)
        self.logger = get_logger("introspection.token_codec")

    def decode(self, authorization_header: Optional[str]) -> AuthorizationClaims:
        """Decrypt a header value into claims.

        Expiry is not checked here; callers compare ``exp`` against the clock.
        """
        token = extract_token(authorization_header)

        try:
            plaintext = jwe.decrypt(token, self._key)
        except (JOSEError, ValueError, TypeError) as e:
            raise InvalidTokenError("Token decryption failed", details={"error": str(e)}) from e

        if plaintext is None:
            raise InvalidTokenError("Token decryption failed")

        try:
            payload = json.loads(plaintext)
        except (UnicodeDecodeError, ValueError) as e:
            raise InvalidTokenError("Token payload is not JSON", details={"error": str(e)}) from e

        if not isinstance(payload, dict):
            raise InvalidTokenError("Token payload is not an object")

        try:
            claims = AuthorizationClaims.model_validate(payload)
        except PydanticValidationError as e:
            raise InvalidTokenError(
                "Token payload failed schema validation",
                details={"errors": [err["msg"] for err in e.errors()]}
            ) from e

        self.logger.debug("Token decoded", consumer_id=claims.user_id, service_id=claims.did)
        return claims
