"""
Object-storage proxy (storage-api) builder.
"""

from typing import Any

from spo.components.builder import STORAGE_PORT, ComponentBuilder, resource_requirements, secret_env, value_env
from spo.components.database import database_env
from spo.credentials.bundle import ANON_KEY, JWT_SECRET_KEY, SERVICE_ROLE_KEY, CredentialBundle
from spo.models.project import Project

FILE_SIZE_LIMIT = "52428800"


class StorageAPIBuilder(ComponentBuilder):
    name = "storage"
    status_key = "storageApi"
    component_label = "storage-api"
    default_image = "supabase/storage-api:v1.28.0"
    default_resources = resource_requirements("64Mi", "50m", "128Mi", "100m")
    ports = [("http", STORAGE_PORT)]

    def environment(self, project: Project, bundle: CredentialBundle) -> list[dict[str, Any]]:
        storage_secret = project.spec.storage.secret_ref.name
        return (
            [
                secret_env("ANON_KEY", bundle.secret_name, ANON_KEY),
                secret_env("SERVICE_KEY", bundle.secret_name, SERVICE_ROLE_KEY),
                secret_env("PGRST_JWT_SECRET", bundle.secret_name, JWT_SECRET_KEY),
            ]
            + database_env(project)
            + [
                value_env("DATABASE_URL", "postgres://$(DB_USER):$(DB_PASSWORD)@$(DB_HOST):$(DB_PORT)/$(DB_NAME)"),
                value_env("FILE_SIZE_LIMIT", FILE_SIZE_LIMIT),
                value_env("STORAGE_BACKEND", "s3"),
                secret_env("GLOBAL_S3_BUCKET", storage_secret, "bucket"),
                secret_env("AWS_ACCESS_KEY_ID", storage_secret, "accessKeyId"),
                secret_env("AWS_SECRET_ACCESS_KEY", storage_secret, "secretAccessKey"),
                secret_env("AWS_DEFAULT_REGION", storage_secret, "region"),
                secret_env("GLOBAL_S3_ENDPOINT", storage_secret, "endpoint"),
                value_env("GLOBAL_S3_FORCE_PATH_STYLE", str(project.spec.storage.force_path_style).lower()),
            ]
        )
