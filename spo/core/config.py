import logging
import os
from pathlib import Path

from pydantic_settings import BaseSettings

# Initialize logging early to ensure it's available during config loading
from spo.core.early_logging import initialize_logging  # noqa: F401
from spo.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

SPO_DIR = Path(__file__).resolve().parent.parent

PROJECT_NAME: str = "SPO"
VERSION: str = "0.1.0"  # replace in CI/CD pipeline
PROJECT_DESCRIPTION: str = "SPO - Supabase Project Operator"

# Cache for env files to avoid multiple calls and duplicate logging
_env_files_cache: list[str] | None = None


def _get_env_files() -> list[str]:
    """
    Get list of environment files to load in order of precedence.

    Configuration hierarchy (container env vars take highest precedence):
    1. Container environment variables - HIGHEST PRECEDENCE
    2. ConfigMap mounted .env file
    3. .env.{ENVIRONMENT} (environment-specific files)
    4. .env (base configuration file) - LOWEST PRECEDENCE

    ENVIRONMENT is read from the system environment only and may be a comma-separated
    list (e.g. "production,kubernetes"). Defaults to 'local'.

    Returns:
        List of environment file paths that exist
    """
    global _env_files_cache

    if _env_files_cache is not None:
        return _env_files_cache
    env_files = []

    environment_var = os.environ.get("ENVIRONMENT", "local")
    environments = [env.strip() for env in environment_var.split(",") if env.strip()]
    logger.debug(f"Using ENVIRONMENT={environment_var} -> environments={environments}")

    if os.path.exists(".env"):
        env_files.append(".env")
        logger.debug("Found base env file: .env")

    for environment in environments:
        env_specific = f".env.{environment}"
        if os.path.exists(env_specific):
            env_files.append(env_specific)
            logger.debug(f"Found environment-specific env file: {env_specific}")
        else:
            logger.debug(f"No environment file {env_specific} (ENVIRONMENT={environment_var})")

    # ConfigMap mounted environment file; only the first one found is used
    configmap_paths = [
        "/etc/config/.env",
        "/app/config/.env",
        os.environ.get("CONFIG_ENV_FILE_PATH", ""),
    ]
    for configmap_path in configmap_paths:
        if configmap_path and os.path.exists(configmap_path):
            env_files.append(configmap_path)
            logger.info(f"ConfigMap env file found and loaded: {configmap_path}")
            break

    logger.info(f"Configuration loading order: {env_files}")

    _env_files_cache = env_files
    return env_files


class Settings(BaseSettings):
    model_config = {"env_file": _get_env_files(), "env_file_encoding": "utf-8", "extra": "ignore"}

    ENVIRONMENT: str = "local"
    DEBUG: bool = False

    # Namespace to watch for SupabaseProject resources, empty means all namespaces
    WATCH_NAMESPACE: str = ""

    # Operator loop
    RESYNC_INTERVAL_SECONDS: float = 30.0
    MAX_CONCURRENT_RECONCILES: int = 4
    RECONCILE_TIMEOUT_SECONDS: float = 120.0
    KUBECTL_TIMEOUT_SECONDS: float = 30.0
    ERROR_BACKOFF_BASE_SECONDS: float = 1.0
    ERROR_BACKOFF_MAX_SECONDS: float = 300.0

    # Requeue delays per failing step; dependency failures need an operator, so they retry slowest
    DEPENDENCY_REQUEUE_SECONDS: float = 30.0
    SECRETS_REQUEUE_SECONDS: float = 10.0
    BOOTSTRAP_REQUEUE_SECONDS: float = 10.0
    COMPONENTS_REQUEUE_SECONDS: float = 15.0
    CONFLICT_REQUEUE_SECONDS: float = 2.0
    # Running but not every replica ready yet
    READINESS_REQUEUE_SECONDS: float = 10.0

    # Database bootstrap job
    JOB_CREATED_REQUEUE_SECONDS: float = 5.0
    JOB_RUNNING_REQUEUE_SECONDS: float = 5.0
    JOB_RETRY_REQUEUE_SECONDS: float = 10.0
    BOOTSTRAP_BACKOFF_LIMIT: int = 3
    BOOTSTRAP_IMAGE: str = "postgres:15-alpine"
    BOOTSTRAP_TTL_SECONDS: int = 600

    # Directory holding the *.yaml.jinja manifest templates
    MANIFESTS_PATH: str = str(SPO_DIR / "manifests")

    # Emit Kubernetes Events for phase changes and failures
    ENABLE_EVENTS: bool = True

    # Health server
    HEALTH_HOST: str = "0.0.0.0"
    HEALTH_PORT: int = 8081

    # Logging configuration
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "log.txt"


def _get_settings() -> Settings:
    settings = Settings()

    setup_logging(log_to_file=settings.LOG_TO_FILE, log_file_path=settings.LOG_FILE_PATH, log_level=settings.LOG_LEVEL)

    logger.info(f"Watching namespace: {settings.WATCH_NAMESPACE or '<all namespaces>'}")
    logger.debug(
        f"Requeue delays: dependencies={settings.DEPENDENCY_REQUEUE_SECONDS}s, "
        f"secrets={settings.SECRETS_REQUEUE_SECONDS}s, bootstrap={settings.BOOTSTRAP_REQUEUE_SECONDS}s, "
        f"components={settings.COMPONENTS_REQUEUE_SECONDS}s"
    )
    logger.debug(f"Bootstrap job backoff limit: {settings.BOOTSTRAP_BACKOFF_LIMIT}")

    return settings


settings = _get_settings()
