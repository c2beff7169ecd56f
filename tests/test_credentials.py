import base64
import json

import pytest

from subwatch.credentials import EnvCredentialExchange, identity_from_token
from subwatch.errors import AuthError


def _jwt(payload: dict) -> str:
    body = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")
    return f"eyJhbGciOiJIUzI1NiJ9.{body}.signature"


def test_identity_prefers_user_id():
    assert identity_from_token(_jwt({"userId": 77, "sub": "f:realm:99"})) == "77"


def test_identity_from_composite_subject():
    assert identity_from_token(_jwt({"sub": "f:abc-realm:12345"})) == "12345"


def test_identity_from_preferred_username():
    assert identity_from_token(_jwt({"preferred_username": "jdoe"})) == "jdoe"


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.!!!.c", _jwt({"name": "x"})])
def test_identity_missing(token):
    assert identity_from_token(token) is None


def _env(values):
    return lambda key, default="": values.get(key, default)


def test_env_exchange_uses_explicit_user_id():
    exchange = EnvCredentialExchange(_env({
        "PORTAL_TOKEN": '"abc.def"',
        "PORTAL_USER_ID": "55",
        "PORTAL_COOKIES": "sid=1",
    }))
    creds = exchange.login()
    assert creds.token == "abc.def"
    assert creds.identity == "55"
    assert creds.cookie_string == "sid=1"


def test_env_exchange_falls_back_to_token_identity():
    creds = EnvCredentialExchange(_env({"PORTAL_TOKEN": _jwt({"userId": 9})})).login()
    assert creds.identity == "9"
    assert creds.cookie_string == ""


def test_env_exchange_without_token():
    with pytest.raises(AuthError, match="PORTAL_TOKEN"):
        EnvCredentialExchange(_env({})).login()


def test_env_exchange_without_identity():
    with pytest.raises(AuthError, match="user id"):
        EnvCredentialExchange(_env({"PORTAL_TOKEN": "opaque"})).login()
