"""
Tests for the credential bundle lifecycle.
"""

import base64

import jwt
import pytest

from spo.core.errors import CredentialBundleCorruptError
from spo.credentials.bundle import ANON_KEY, JWT_SECRET_KEY, PG_META_CRYPTO_KEY, SERVICE_ROLE_KEY
from spo.manager.credential_manager import CredentialManager
from spo.models.project import Project


@pytest.mark.asyncio
async def test_creates_complete_bundle(cluster, acme):
    manager = CredentialManager(cluster)
    bundle = await manager.ensure_credentials(Project.from_k8s(acme))

    data = cluster.secret_data("acme-jwt")
    assert set(data) == {JWT_SECRET_KEY, ANON_KEY, SERVICE_ROLE_KEY, PG_META_CRYPTO_KEY}
    assert bundle.is_complete
    assert bundle.secret_name == "acme-jwt"

    secret = cluster.get("Secret", "acme-jwt")
    owner = secret["metadata"]["ownerReferences"][0]
    assert owner["uid"] == acme["metadata"]["uid"]
    assert owner["controller"] is True


@pytest.mark.asyncio
async def test_bundle_is_stable_across_passes(cluster, acme):
    manager = CredentialManager(cluster)
    project = Project.from_k8s(acme)
    await manager.ensure_credentials(project)
    first = cluster.secret_data("acme-jwt")
    version = cluster.get("Secret", "acme-jwt")["metadata"]["resourceVersion"]

    for _ in range(5):
        bundle = await manager.ensure_credentials(project)
        assert bundle.jwt_secret == first[JWT_SECRET_KEY]

    assert cluster.secret_data("acme-jwt") == first
    assert cluster.get("Secret", "acme-jwt")["metadata"]["resourceVersion"] == version


@pytest.mark.asyncio
async def test_heals_missing_derived_keys(cluster, acme):
    signing_key = base64.b64encode(b"k" * 32).decode()
    cluster.add_secret("acme-jwt", {JWT_SECRET_KEY: signing_key, "custom": "kept"})

    bundle = await CredentialManager(cluster).ensure_credentials(Project.from_k8s(acme))

    data = cluster.secret_data("acme-jwt")
    assert data[JWT_SECRET_KEY] == signing_key
    assert data["custom"] == "kept"
    assert bundle.is_complete
    claims = jwt.decode(data[ANON_KEY], b"k" * 32, algorithms=["HS256"])
    assert claims["role"] == "anon"
    claims = jwt.decode(data[SERVICE_ROLE_KEY], b"k" * 32, algorithms=["HS256"])
    assert claims["role"] == "service_role"


@pytest.mark.asyncio
async def test_healing_keeps_existing_derived_keys(cluster, acme):
    signing_key = base64.b64encode(b"k" * 32).decode()
    cluster.add_secret("acme-jwt", {JWT_SECRET_KEY: signing_key, ANON_KEY: "existing-anon"})

    await CredentialManager(cluster).ensure_credentials(Project.from_k8s(acme))

    data = cluster.secret_data("acme-jwt")
    assert data[ANON_KEY] == "existing-anon"
    assert data[SERVICE_ROLE_KEY]
    assert data[PG_META_CRYPTO_KEY]


@pytest.mark.asyncio
async def test_bundle_without_signing_key_is_corrupt(cluster, acme):
    cluster.add_secret("acme-jwt", {ANON_KEY: "orphan"})

    with pytest.raises(CredentialBundleCorruptError) as exc_info:
        await CredentialManager(cluster).ensure_credentials(Project.from_k8s(acme))

    assert not exc_info.value.retryable
    assert cluster.secret_data("acme-jwt") == {ANON_KEY: "orphan"}


def test_heal_bundle_returns_only_missing_keys():
    signing_key = base64.b64encode(b"k" * 32).decode()
    healed = CredentialManager.heal_bundle({JWT_SECRET_KEY: signing_key, PG_META_CRYPTO_KEY: "x"})
    assert set(healed) == {ANON_KEY, SERVICE_ROLE_KEY}


@pytest.mark.asyncio
async def test_binary_bundle_value_is_reported_as_corrupt(cluster, acme):
    cluster.add_raw_secret("acme-jwt", {JWT_SECRET_KEY: b"\xff\xfe\x00bin"})

    with pytest.raises(CredentialBundleCorruptError, match="not UTF-8"):
        await CredentialManager(cluster).ensure_credentials(Project.from_k8s(acme))
