"""
Unit tests for the error taxonomy.
"""

import pytest

from shared import errors
from shared.errors import (
    BURN_ERROR_CODE, UPDATE_ERROR_CODE, AccessLayerException, AssetNotFoundError,
    AuthorizationDenied, BadRequestedUrlError, ConfigurationError, EndpointNotGrantedError,
    ExternalServiceError, InvalidRecordError, InvalidTokenError, QueueUnavailableError,
    SubscriptionValidationFailedError, UnauthorizedError, UpstreamResolutionTimeoutError
)


def _declared_errors():
    return {
        obj for obj in vars(errors).values()
        if isinstance(obj, type) and issubclass(obj, AccessLayerException)
    }


class TestErrorTaxonomy:

    def test_only_known_error_types(self):
        assert _declared_errors() == {
            AccessLayerException, ConfigurationError, ExternalServiceError, AssetNotFoundError,
            AuthorizationDenied, InvalidTokenError, BadRequestedUrlError, EndpointNotGrantedError,
            SubscriptionValidationFailedError, UnauthorizedError, UpstreamResolutionTimeoutError,
            InvalidRecordError, QueueUnavailableError,
        }

    @pytest.mark.parametrize("error, code", [
        (InvalidTokenError(), "INVALID_TOKEN"),
        (BadRequestedUrlError(), "BAD_REQUESTED_URL"),
        (EndpointNotGrantedError(), "ENDPOINT_NOT_GRANTED"),
        (SubscriptionValidationFailedError(), "SUBSCRIPTION_VALIDATION_FAILED"),
        (UnauthorizedError(), "UNAUTHORIZED"),
        (UpstreamResolutionTimeoutError(), "UPSTREAM_RESOLUTION_TIMEOUT"),
    ])
    def test_deny_reasons(self, error, code):
        assert isinstance(error, AuthorizationDenied)
        assert error.code == code

    def test_reconciliation_codes_are_distinct(self):
        codes = {InvalidRecordError().code, BURN_ERROR_CODE, UPDATE_ERROR_CODE, QueueUnavailableError().code}

        assert codes == {"INVALID_RECORD", "BURN-001", "UPDATE-001", "QUEUE_UNAVAILABLE"}
