"""
Kubectl connector for reading and writing Kubernetes objects.

All writes go through create/replace with the full object body, so the API server's
resourceVersion check gives optimistic concurrency: a replace built from a stale read fails
with a conflict instead of overwriting someone else's change.
"""

import asyncio
import base64
import json
import logging
import os
from typing import Any

from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from spo.core.config import settings

logger = logging.getLogger(__name__)


class KubectlConnectionError(Exception):
    """Exception raised when the API server cannot be reached."""


class KubectlExecutionError(Exception):
    """Exception raised when a kubectl command fails."""


class KubectlNotFoundError(KubectlExecutionError):
    """The requested object does not exist."""


class KubectlConflictError(KubectlExecutionError):
    """A write lost an optimistic-concurrency race; retry from a fresh read."""


class KubectlAlreadyExistsError(KubectlConflictError):
    """A create raced with another writer that created the same object."""


class KubectlTimeoutError(KubectlConnectionError):
    """A kubectl command did not finish within its deadline."""


_CONNECTION_ERROR_MARKERS = ("connection refused", "unable to connect to the server", "i/o timeout")


class KubectlConnector:
    """Connector for interacting with Kubernetes clusters using kubectl."""

    _instance = None
    isConnected = False

    def __new__(cls):
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """
        Initialize the Kubectl connector.

        When running inside a Kubernetes cluster, kubectl automatically uses the service
        account mounted into the pod.
        """
        if self._initialized:
            return

        logger.debug("Initializing KubectlConnector")
        self.env = os.environ.copy()
        self.timeout = settings.KUBECTL_TIMEOUT_SECONDS
        self._initialized = True

    async def _test_connection(self) -> bool:
        """
        Test kubectl connection using 'kubectl auth whoami'.

        Returns:
            True if connection is successful, False otherwise
        """
        try:
            _, stderr, code = await self._run_kubectl_command(["auth", "whoami"])
        except KubectlConnectionError as e:
            logger.warning(f"Kubectl connection failed: {e}")
            KubectlConnector.isConnected = False
            return False

        KubectlConnector.isConnected = code == 0
        if code == 0:
            logger.info("Kubectl connection successful")
        else:
            logger.warning(f"Kubectl connection failed: {stderr}")
        return KubectlConnector.isConnected

    @retry(
        stop=stop_after_attempt(10),
        wait=wait_exponential(multiplier=2, min=2, max=30),
        retry=retry_if_exception_type(KubectlConnectionError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def wait_for_connection(self) -> None:
        """Block operator startup until the API server answers."""
        if not await self._test_connection():
            raise KubectlConnectionError("kubectl connection still failing")

    async def _run_kubectl_command(self, args: list[str], stdin_input: str | None = None) -> tuple[str, str, int]:
        """
        Run a kubectl command with subprocess.

        Args:
            args: List of kubectl command arguments
            stdin_input: Optional string to pass to stdin

        Returns:
            Tuple of (stdout, stderr, return_code)

        Raises:
            KubectlTimeoutError: If the command exceeds the configured deadline
            KubectlConnectionError: If the API server is unreachable
        """
        cmd = ["kubectl", *args]
        cmd_str = " ".join(cmd)
        logger.debug(f"Running kubectl command: {cmd_str}")

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if stdin_input is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self.env,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin_input.encode("utf-8") if stdin_input is not None else None),
                timeout=self.timeout,
            )
        except TimeoutError:
            raise KubectlTimeoutError(f"kubectl command timed out after {self.timeout}s: {cmd_str}")
        finally:
            # Timed out, or the pass deadline cancelled us: never leave the child running
            if process.returncode is None:
                process.kill()
                await process.wait()

        stdout_str = stdout.decode("utf-8").strip()
        stderr_str = stderr.decode("utf-8").strip()

        if process.returncode != 0:
            logger.debug(f"kubectl command failed with code {process.returncode}: {stderr_str}")
            if any(marker in stderr_str.lower() for marker in _CONNECTION_ERROR_MARKERS):
                KubectlConnector.isConnected = False
                raise KubectlConnectionError(f"kubectl connection failed: {stderr_str}")
        else:
            logger.debug(f"kubectl command succeeded: {cmd_str}")

        return stdout_str, stderr_str, process.returncode

    @staticmethod
    def _raise_for_error(stderr: str, action: str) -> None:
        """Translate kubectl stderr into a typed exception."""
        if "AlreadyExists" in stderr or "already exists" in stderr:
            raise KubectlAlreadyExistsError(f"{action}: {stderr}")
        if "NotFound" in stderr or "not found" in stderr:
            raise KubectlNotFoundError(f"{action}: {stderr}")
        if "Conflict" in stderr or "the object has been modified" in stderr:
            raise KubectlConflictError(f"{action}: {stderr}")
        raise KubectlExecutionError(f"{action}: {stderr}")

    @staticmethod
    def _namespace_args(namespace: str | None) -> list[str]:
        return ["-n", namespace] if namespace else []

    async def get_object(self, kind: str, name: str, namespace: str | None = None) -> dict[str, Any] | None:
        """
        Fetch a single object as a dictionary.

        Args:
            kind: Resource type as understood by kubectl (e.g. 'deployment', 'jobs.batch')
            name: Object name
            namespace: Namespace of the object, None for cluster-scoped resources

        Returns:
            The object, or None if it does not exist
        """
        args = ["get", kind, name, *self._namespace_args(namespace), "-o", "json"]
        stdout, stderr, code = await self._run_kubectl_command(args)

        if code != 0:
            try:
                self._raise_for_error(stderr, f"Failed to get {kind} {name}")
            except KubectlNotFoundError:
                logger.debug(f"{kind} {name} not found in namespace {namespace}")
                return None

        return json.loads(stdout)

    async def list_objects(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        """
        List objects of a kind, in one namespace or across all namespaces.

        Args:
            kind: Resource type
            namespace: Namespace to list, None for all namespaces

        Returns:
            List of objects
        """
        scope = self._namespace_args(namespace) if namespace else ["--all-namespaces"]
        args = ["get", kind, *scope, "-o", "json"]
        stdout, stderr, code = await self._run_kubectl_command(args)

        if code != 0:
            self._raise_for_error(stderr, f"Failed to list {kind}")

        return json.loads(stdout).get("items", [])

    async def create_object(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """
        Create an object from a manifest.

        Raises:
            KubectlAlreadyExistsError: If an object with this name already exists
        """
        description = self._describe(manifest)
        stdout, stderr, code = await self._run_kubectl_command(
            ["create", "-f", "-", "-o", "json"], stdin_input=json.dumps(manifest)
        )

        if code != 0:
            self._raise_for_error(stderr, f"Failed to create {description}")

        logger.info(f"Created {description}")
        return json.loads(stdout)

    async def replace_object(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """
        Replace an object with the given body.

        The manifest must carry the resourceVersion it was read at.

        Raises:
            KubectlConflictError: If the object changed since it was read
            KubectlNotFoundError: If the object no longer exists
        """
        description = self._describe(manifest)
        stdout, stderr, code = await self._run_kubectl_command(
            ["replace", "-f", "-", "-o", "json"], stdin_input=json.dumps(manifest)
        )

        if code != 0:
            self._raise_for_error(stderr, f"Failed to replace {description}")

        logger.debug(f"Replaced {description}")
        return json.loads(stdout)

    async def replace_status(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """
        Replace only the status subresource of an object.

        Raises:
            KubectlConflictError: If the object changed since it was read
        """
        description = self._describe(manifest)
        stdout, stderr, code = await self._run_kubectl_command(
            ["replace", "--subresource=status", "-f", "-", "-o", "json"], stdin_input=json.dumps(manifest)
        )

        if code != 0:
            self._raise_for_error(stderr, f"Failed to replace status of {description}")

        logger.debug(f"Replaced status of {description}")
        return json.loads(stdout)

    async def get_secret(self, secret_name: str, namespace: str, errors: str = "strict") -> dict[str, str] | None:
        """
        Retrieve a secret and return its data as a dictionary.

        Args:
            secret_name: Name of the secret to retrieve
            namespace: The namespace containing the secret
            errors: How undecodable bytes are handled, as for ``bytes.decode``

        Returns:
            Dictionary with secret data (decoded from base64) if found, None otherwise
        """
        logger.debug(f"Retrieving secret {secret_name} from namespace {namespace}")

        secret = await self.get_object("secret", secret_name, namespace)
        if secret is None:
            return None

        return decode_secret_data(secret, errors=errors)

    async def delete_resource(self, resource_type: str, resource_name: str, namespace: str | None = None) -> bool:
        """
        Delete a Kubernetes resource.

        Args:
            resource_type: The type of resource to delete (e.g., 'secret', 'job')
            resource_name: The name of the resource to delete
            namespace: The namespace containing the resource

        Returns:
            True if the resource was deleted or did not exist, False otherwise
        """
        logger.debug(f"Deleting {resource_type} {resource_name}{' in namespace ' + namespace if namespace else ''}")

        args = ["delete", resource_type, resource_name, "--ignore-not-found=true", "--cascade=background"]
        args.extend(self._namespace_args(namespace))

        stdout, stderr, code = await self._run_kubectl_command(args)

        if code != 0:
            logger.error(f"Failed to delete {resource_type} {resource_name}: {stderr}")
            return False

        logger.info(f"Successfully deleted {resource_type} {resource_name}")
        return True

    @staticmethod
    def _describe(manifest: dict[str, Any]) -> str:
        metadata = manifest.get("metadata", {})
        return f"{manifest.get('kind', 'object')} {metadata.get('namespace', '')}/{metadata.get('name', '')}"


def decode_secret_data(secret: dict[str, Any], errors: str = "strict") -> dict[str, str]:
    """
    Decode the base64 values of a Secret object's data field.

    With ``errors="replace"`` binary values (certificates, raw keys) decode to text with
    replacement characters instead of raising ``UnicodeDecodeError``.
    """
    decoded_data = {}
    for key, value in (secret.get("data") or {}).items():
        decoded_data[key] = base64.b64decode(value).decode("utf-8", errors=errors) if value else ""
    return decoded_data


def encode_secret_data(data: dict[str, str]) -> dict[str, str]:
    """Base64-encode values for a Secret object's data field."""
    return {key: base64.b64encode(value.encode("utf-8")).decode("ascii") for key, value in data.items()}


def create_kubectl_connector() -> KubectlConnector:
    """
    Create and return a KubectlConnector instance.

    Returns:
        KubectlConnector instance
    """
    logger.debug("Creating KubectlConnector")
    return KubectlConnector()
