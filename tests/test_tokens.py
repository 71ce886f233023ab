from datetime import datetime, timedelta, timezone

import pytest

from brs.errors import TokenError
from brs.security.tokens import TrackingTokenSigner

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
SECRET = "test-signing-secret-0123456789"


def test_issued_token_verifies_for_its_public_id():
    signer = TrackingTokenSigner(SECRET)
    token = signer.issue("ABC12345", now=NOW)

    assert signer.verify(token, now=NOW + timedelta(days=1)) == "ABC12345"
    signer.verify_for(token, "ABC12345", now=NOW)


def test_token_fails_for_other_public_id():
    signer = TrackingTokenSigner(SECRET)
    token = signer.issue("ABC12345", now=NOW)

    with pytest.raises(TokenError) as excinfo:
        signer.verify_for(token, "ZZZ99999", now=NOW)

    assert excinfo.value.code == "token_mismatch"


def test_missing_token_is_rejected():
    signer = TrackingTokenSigner(SECRET)

    with pytest.raises(TokenError) as excinfo:
        signer.verify_for(None, "ABC12345", now=NOW)

    assert excinfo.value.code == "missing_token"


def test_expired_token_is_rejected():
    signer = TrackingTokenSigner(SECRET, ttl=timedelta(days=90))
    token = signer.issue("ABC12345", now=NOW)

    with pytest.raises(TokenError) as excinfo:
        signer.verify(token, now=NOW + timedelta(days=90))

    assert excinfo.value.code == "invalid_token"


def test_token_signed_with_other_secret_is_rejected():
    token = TrackingTokenSigner("another-secret-0123456789").issue("ABC12345", now=NOW)

    with pytest.raises(TokenError):
        TrackingTokenSigner(SECRET).verify(token, now=NOW)
