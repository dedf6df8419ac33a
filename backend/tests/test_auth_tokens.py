import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest

from event_portal import errors
from event_portal.auth import (
    AuthSettings,
    create_access_token,
    create_email_action_token,
    decode_access_token,
    decode_email_action_token,
    hash_password,
    verify_password,
)
from event_portal.models import DeletionRequestType, UserRole


@pytest.fixture
def settings():
    return AuthSettings(jwt_secret="unit-test-secret-that-is-long-enough", bcrypt_rounds=4)


@pytest.fixture
def user():
    return SimpleNamespace(id=uuid.uuid4(), role=UserRole.organizer)


def test_password_hash_round_trip():
    hashed = hash_password("s3cret-pass", 4)
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong-pass", hashed)


def test_verify_password_rejects_malformed_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_access_token_carries_user_and_role(settings, user):
    token = create_access_token(user, settings)

    claims = jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    assert claims["sub"] == str(user.id)
    assert claims["role"] == "organizer"
    assert decode_access_token(token, settings) == user.id


def test_expired_access_token(settings, user):
    issued = datetime.now(timezone.utc) - timedelta(days=8)
    token = jwt.encode(
        {"sub": str(user.id), "typ": "access", "iat": issued, "exp": issued + timedelta(days=7)},
        settings.jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(errors.AuthenticationError, match="expired"):
        decode_access_token(token, settings)


def test_token_signed_with_other_secret(settings, user):
    other = AuthSettings(jwt_secret="a-completely-different-secret-value")
    with pytest.raises(errors.AuthenticationError):
        decode_access_token(create_access_token(user, other), settings)


def test_email_action_token_is_not_an_access_token(settings, user):
    token = create_email_action_token(user.id, DeletionRequestType.register_decline, settings)
    with pytest.raises(errors.AuthenticationError):
        decode_access_token(token, settings)


def test_email_action_token_is_bound_to_its_action(settings, user):
    token = create_email_action_token(user.id, DeletionRequestType.login_decline, settings)

    assert decode_email_action_token(token, DeletionRequestType.login_decline, settings) == user.id
    with pytest.raises(errors.AuthenticationError):
        decode_email_action_token(token, DeletionRequestType.register_decline, settings)
