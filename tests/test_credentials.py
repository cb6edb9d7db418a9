"""
Unit tests for credential issuance and user session tokens.
"""
from datetime import timedelta

from devicehub.config import settings
from devicehub.core.credentials import generate_credential, generate_id, rotate_credential
from devicehub.core.security import create_access_token, decode_access_token
from devicehub.models import Device


def test_credentials_are_unique_and_sized():
    credentials = {generate_credential() for _ in range(1000)}

    assert len(credentials) == 1000
    assert all(len(c) == settings.CREDENTIAL_BYTES * 2 for c in credentials)


def test_ids_are_unique():
    assert generate_id() != generate_id()


def test_rotate_replaces_credential():
    device = Device(id=generate_id(), name="Phone", credential=generate_credential())
    old = device.credential

    new = rotate_credential(device)

    assert new != old
    assert device.credential == new


def test_access_token_round_trip():
    token = create_access_token(data={"sub": "user-1"})

    payload = decode_access_token(token)

    assert payload["sub"] == "user-1"


def test_expired_access_token_rejected():
    token = create_access_token(data={"sub": "user-1"}, expires_delta=timedelta(seconds=-1))

    assert decode_access_token(token) is None


def test_garbage_access_token_rejected():
    assert decode_access_token("not.a.token") is None
