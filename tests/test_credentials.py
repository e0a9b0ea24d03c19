"""
Tests for credential generation and dependency bundle validation.
"""

import base64

import jwt
import pytest

from spo.core.errors import CredentialGenerationError, DependencyValidationError
from spo.credentials import jwt as jwt_keys
from spo.credentials.bundle import ANON_KEY, JWT_SECRET_KEY, PG_META_CRYPTO_KEY, SERVICE_ROLE_KEY, CredentialBundle
from spo.credentials.validation import (
    STORAGE_DEPENDENCY,
    validate_basic_auth_secret,
    validate_database_secret,
    validate_storage_secret,
)
from tests.conftest import DATABASE_SECRET, STORAGE_SECRET


def _decode(token: str, secret: str) -> dict:
    return jwt.decode(token, base64.b64decode(secret), algorithms=["HS256"])


def test_generated_secret_is_32_random_bytes():
    secret = jwt_keys.generate_jwt_secret()
    assert len(base64.b64decode(secret)) == 32
    assert secret != jwt_keys.generate_jwt_secret()


def test_role_tokens_are_signed_with_decoded_key():
    secret = jwt_keys.generate_jwt_secret()
    anon = _decode(jwt_keys.generate_anon_key(secret, now=1_700_000_000), secret)
    service = _decode(jwt_keys.generate_service_role_key(secret, now=1_700_000_000), secret)

    assert anon["role"] == "anon"
    assert service["role"] == "service_role"
    assert anon["iss"] == "supabase"
    assert anon["iat"] == 1_700_000_000
    assert anon["exp"] - anon["iat"] == 10 * 365 * 24 * 60 * 60


def test_role_token_rejects_bad_secret():
    with pytest.raises(CredentialGenerationError):
        jwt_keys.generate_anon_key("")
    with pytest.raises(CredentialGenerationError):
        jwt_keys.generate_anon_key("not base64!")


def test_token_does_not_verify_with_other_key():
    token = jwt_keys.generate_anon_key(jwt_keys.generate_jwt_secret())
    with pytest.raises(jwt.InvalidSignatureError):
        _decode(token, jwt_keys.generate_jwt_secret())


def test_bundle_round_trips_secret_data():
    data = {JWT_SECRET_KEY: "a", ANON_KEY: "b", SERVICE_ROLE_KEY: "c", PG_META_CRYPTO_KEY: "d"}
    bundle = CredentialBundle.from_k8s_secret_data(data, "acme-jwt")
    assert bundle.is_complete
    assert bundle.to_k8s_secret_data() == data
    assert CredentialBundle.get_secret_name("acme") == "acme-jwt"


def test_bundle_reports_missing_keys():
    bundle = CredentialBundle.from_k8s_secret_data({JWT_SECRET_KEY: "a", SERVICE_ROLE_KEY: "c"})
    assert bundle.missing_keys() == [ANON_KEY, PG_META_CRYPTO_KEY]
    assert not bundle.is_complete


def test_valid_bundles_pass():
    validate_database_secret(DATABASE_SECRET)
    validate_storage_secret(STORAGE_SECRET)
    validate_basic_auth_secret({"username": "admin", "password": "pw"})


def test_missing_key_names_dependency_and_key():
    data = dict(STORAGE_SECRET)
    del data["bucket"]
    with pytest.raises(DependencyValidationError) as exc_info:
        validate_storage_secret(data)
    assert exc_info.value.dependency == STORAGE_DEPENDENCY
    assert exc_info.value.field == "bucket"
    assert "bucket" in str(exc_info.value)


def test_empty_value_counts_as_present():
    validate_database_secret({**DATABASE_SECRET, "password": ""})
