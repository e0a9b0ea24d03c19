"""
Lifecycle of the project credential bundle.

The bundle is created once with all four keys. After that the signing key is never
replaced; derived values that are missing (bundles written by older operator versions) are
generated from the existing signing key and added with an optimistic-concurrency replace.
"""

import binascii
import logging
from typing import Any

from spo.connectors.kubectl import KubectlConnector, decode_secret_data, encode_secret_data
from spo.core.errors import CredentialBundleCorruptError
from spo.credentials import jwt as jwt_keys
from spo.credentials.bundle import (
    ANON_KEY,
    JWT_SECRET_KEY,
    PG_META_CRYPTO_KEY,
    SERVICE_ROLE_KEY,
    CredentialBundle,
)
from spo.models.project import Project
from spo.utils.kubernetes import generate_labels, set_owner_reference

logger = logging.getLogger(__name__)


class CredentialManager:
    """Creates and heals the ``<name>-jwt`` Secret of a project."""

    def __init__(self, kubectl_connector: KubectlConnector) -> None:
        self.kubectl_connector = kubectl_connector

    def _secret_manifest(self, project: Project, secret_name: str, data: dict[str, str]) -> dict[str, Any]:
        manifest = {
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "Opaque",
            "metadata": {
                "name": secret_name,
                "namespace": project.namespace,
                "labels": generate_labels(project.name, "jwt"),
            },
            "data": encode_secret_data(data),
        }
        return set_owner_reference(manifest, project.name, project.metadata.uid)

    @staticmethod
    def generate_bundle() -> dict[str, str]:
        """Generate a complete new set of credentials."""
        jwt_secret = jwt_keys.generate_jwt_secret()
        return {
            JWT_SECRET_KEY: jwt_secret,
            ANON_KEY: jwt_keys.generate_anon_key(jwt_secret),
            SERVICE_ROLE_KEY: jwt_keys.generate_service_role_key(jwt_secret),
            PG_META_CRYPTO_KEY: jwt_keys.generate_pg_meta_crypto_key(),
        }

    @staticmethod
    def heal_bundle(data: dict[str, str]) -> dict[str, str]:
        """
        Values for the keys missing from an existing bundle.

        Args:
            data: Decoded data of the existing Secret

        Returns:
            Only the generated keys, empty when nothing is missing

        Raises:
            CredentialBundleCorruptError: If the signing key itself is missing
        """
        jwt_secret = data.get(JWT_SECRET_KEY)
        if not jwt_secret:
            raise CredentialBundleCorruptError(
                f"credential bundle has no {JWT_SECRET_KEY}; it cannot be regenerated without invalidating issued tokens"
            )

        healed = {}
        if not data.get(ANON_KEY):
            healed[ANON_KEY] = jwt_keys.generate_anon_key(jwt_secret)
        if not data.get(SERVICE_ROLE_KEY):
            healed[SERVICE_ROLE_KEY] = jwt_keys.generate_service_role_key(jwt_secret)
        if not data.get(PG_META_CRYPTO_KEY):
            healed[PG_META_CRYPTO_KEY] = jwt_keys.generate_pg_meta_crypto_key()
        return healed

    async def ensure_credentials(self, project: Project) -> CredentialBundle:
        """
        Make sure the project's credential bundle exists and is complete.

        Args:
            project: The project owning the bundle

        Returns:
            The bundle as stored after this call

        Raises:
            CredentialGenerationError: If random generation or token signing fails
            CredentialBundleCorruptError: If an existing bundle lost its signing key or holds
                binary values
            KubectlConflictError: If another writer created or changed the Secret concurrently
        """
        secret_name = CredentialBundle.get_secret_name(project.name)
        secret = await self.kubectl_connector.get_object("secret", secret_name, project.namespace)

        if secret is None:
            data = self.generate_bundle()
            await self.kubectl_connector.create_object(self._secret_manifest(project, secret_name, data))
            logger.info(f"Created credential bundle {project.namespace}/{secret_name}")
            return CredentialBundle.from_k8s_secret_data(data, secret_name)

        try:
            data = decode_secret_data(secret)
        except (UnicodeDecodeError, binascii.Error) as e:
            raise CredentialBundleCorruptError(
                f"credential bundle {secret_name} holds a value that is not UTF-8 text: {e}"
            ) from e

        healed = self.heal_bundle(data)
        if not healed:
            return CredentialBundle.from_k8s_secret_data(data, secret_name)

        # Keep the existing data untouched, only add what was missing
        secret.setdefault("data", {}).update(encode_secret_data(healed))
        await self.kubectl_connector.replace_object(secret)
        logger.info(f"Healed credential bundle {project.namespace}/{secret_name}, added {sorted(healed)}")
        return CredentialBundle.from_k8s_secret_data({**data, **healed}, secret_name)
