"""
Required-key checks for the credential bundles a project references.

Only key presence is checked, never the values.
"""

from spo.core.errors import DependencyValidationError

DATABASE_REQUIRED_KEYS = ("host", "port", "database", "username", "password")
STORAGE_REQUIRED_KEYS = ("endpoint", "region", "bucket", "accessKeyId", "secretAccessKey")
BASIC_AUTH_REQUIRED_KEYS = ("username", "password")

DATABASE_DEPENDENCY = "postgresql"
STORAGE_DEPENDENCY = "s3"
BASIC_AUTH_DEPENDENCY = "dashboard-basic-auth"


def validate_required_keys(dependency: str, data: dict[str, str], required_keys: tuple[str, ...]) -> None:
    """
    Raise for the first required key missing from a bundle.

    Raises:
        DependencyValidationError: Naming the dependency and the missing key
    """
    for key in required_keys:
        if key not in data:
            raise DependencyValidationError(dependency, key, f"missing required key '{key}'")


def validate_database_secret(data: dict[str, str]) -> None:
    validate_required_keys(DATABASE_DEPENDENCY, data, DATABASE_REQUIRED_KEYS)


def validate_storage_secret(data: dict[str, str]) -> None:
    validate_required_keys(STORAGE_DEPENDENCY, data, STORAGE_REQUIRED_KEYS)


def validate_basic_auth_secret(data: dict[str, str]) -> None:
    validate_required_keys(BASIC_AUTH_DEPENDENCY, data, BASIC_AUTH_REQUIRED_KEYS)
