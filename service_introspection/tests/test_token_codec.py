"""
Unit tests for the access token codec.
"""

import json
import time

import pytest

from service_introspection.app.tokens.codec import TokenCodec, derive_key, extract_token
from service_introspection.app.tokens.models import AuthorizationClaims
from shared.errors import InvalidTokenError
from shared.test_helpers import (
    CONSUMER, TEST_SECRET_PHRASE, MockTokenGenerator, service_id, test_data_factory
)


class TestDeriveKey:
    """Test cases for key derivation."""

    def test_digits_map_to_their_value(self):
        assert derive_key("1209") == bytes([1, 2, 0, 9])

    def test_non_digits_map_to_zero(self):
        assert derive_key("a1-Z") == bytes([0, 1, 0, 0])

    def test_key_length_follows_phrase(self):
        assert len(derive_key(TEST_SECRET_PHRASE)) == 32


class TestExtractToken:
    """Test cases for header parsing."""

    def test_bearer_scheme(self):
        assert extract_token("Bearer abc.def") == "abc.def"

    def test_bare_token(self):
        assert extract_token("abc.def") == "abc.def"

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_empty_header(self, header):
        with pytest.raises(InvalidTokenError):
            extract_token(header)


class TestTokenCodec:
    """Test cases for TokenCodec."""

    @pytest.fixture
    def codec(self):
        return TokenCodec(TEST_SECRET_PHRASE)

    @pytest.fixture
    def issuer(self):
        return MockTokenGenerator(TEST_SECRET_PHRASE)

    def test_decode_valid_token(self, codec, issuer):
        """A token from the issuing node decodes into claims."""
        claims = test_data_factory.create_claims(subscriptionDid="did:nv:abc")
        token = issuer.generate_access_token(claims)

        result = codec.decode(f"Bearer {token}")

        assert isinstance(result, AuthorizationClaims)
        assert result.user_id == CONSUMER
        assert result.did == service_id()
        assert result.endpoints == ["https://api.example.com/users/:id"]
        assert result.subscription_did == "did:nv:abc"
        assert result.authentication.type == "bearer"
        assert result.authentication.token == "upstream-secret"
        assert result.exp == claims["exp"]

    def test_decode_bare_token(self, codec, issuer):
        token = issuer.generate_access_token(test_data_factory.create_claims())

        assert codec.decode(token).user_id == CONSUMER

    def test_decode_does_not_enforce_expiry(self, codec, issuer):
        """Expiry is compared by the caller."""
        token = issuer.generate_access_token(test_data_factory.create_claims(expires_in=-60))

        result = codec.decode(token)

        assert result.is_expired(time.time())

    def test_wrong_key(self, codec):
        other_issuer = MockTokenGenerator("98765432109876543210987654321098")
        token = other_issuer.generate_access_token(test_data_factory.create_claims())

        with pytest.raises(InvalidTokenError):
            codec.decode(token)

    def test_garbage_token(self, codec):
        with pytest.raises(InvalidTokenError):
            codec.decode("Bearer not-a-jwe")

    def test_tampered_token(self, codec, issuer):
        token = issuer.generate_access_token(test_data_factory.create_claims())
        header, key, iv, ciphertext, tag = token.split(".")
        tampered = ".".join([header, key, iv, ciphertext, "A" * len(tag)])

        with pytest.raises(InvalidTokenError):
            codec.decode(tampered)

    def test_payload_not_json(self, codec, issuer):
        token = issuer.encrypt("definitely not json")

        with pytest.raises(InvalidTokenError) as exc_info:
            codec.decode(token)

        assert "JSON" in exc_info.value.message

    def test_payload_not_object(self, codec, issuer):
        token = issuer.encrypt(json.dumps(["a", "list"]))

        with pytest.raises(InvalidTokenError):
            codec.decode(token)

    def test_missing_required_claim(self, codec, issuer):
        claims = test_data_factory.create_claims()
        del claims["userId"]

        with pytest.raises(InvalidTokenError) as exc_info:
            codec.decode(issuer.generate_access_token(claims))

        assert exc_info.value.code == "INVALID_TOKEN"

    def test_unknown_claim_rejected(self, codec, issuer):
        claims = test_data_factory.create_claims(unexpected="value")

        with pytest.raises(InvalidTokenError):
            codec.decode(issuer.generate_access_token(claims))
