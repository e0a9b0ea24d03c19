"""
The credential bundle stored in the project's ``<name>-jwt`` Secret.
"""

from dataclasses import dataclass, fields
from typing import ClassVar

JWT_SECRET_KEY = "jwt-secret"
ANON_KEY = "anon-key"
SERVICE_ROLE_KEY = "service-role-key"
PG_META_CRYPTO_KEY = "pg-meta-crypto-key"


@dataclass
class CredentialBundle:
    """Signing key, the tokens derived from it and the postgres-meta crypto key."""

    SECRET_NAME_TEMPLATE: ClassVar[str] = "{prefix}-jwt"
    KEY_MAPPING: ClassVar[dict[str, str]] = {
        "jwt_secret": JWT_SECRET_KEY,
        "anon_key": ANON_KEY,
        "service_role_key": SERVICE_ROLE_KEY,
        "pg_meta_crypto_key": PG_META_CRYPTO_KEY,
    }

    jwt_secret: str | None = None
    anon_key: str | None = None
    service_role_key: str | None = None
    pg_meta_crypto_key: str | None = None
    secret_name: str = ""

    def to_k8s_secret_data(self) -> dict[str, str]:
        """Secret keys for every value that is set."""
        return {
            secret_key: getattr(self, field_name)
            for field_name, secret_key in self.KEY_MAPPING.items()
            if getattr(self, field_name)
        }

    @classmethod
    def from_k8s_secret_data(cls, secret_data: dict[str, str], secret_name: str = "") -> "CredentialBundle":
        kwargs = {
            field_name: secret_data[secret_key]
            for field_name, secret_key in cls.KEY_MAPPING.items()
            if secret_data.get(secret_key)
        }
        return cls(secret_name=secret_name, **kwargs)

    @classmethod
    def get_secret_name(cls, prefix: str) -> str:
        return cls.SECRET_NAME_TEMPLATE.format(prefix=prefix)

    def missing_keys(self) -> list[str]:
        """Secret keys that have no value, in bundle order."""
        return [
            self.KEY_MAPPING[field.name]
            for field in fields(self)
            if field.name in self.KEY_MAPPING and not getattr(self, field.name)
        ]

    @property
    def is_complete(self) -> bool:
        return not self.missing_keys()
