"""
Run loop scheduling reconciliation passes.

A periodic resync lists every SupabaseProject and triggers a pass for each. Passes request
their own follow-up through ``requeue_after``. At most one pass per project is in flight;
a trigger arriving while a pass runs is remembered and replayed once it finishes. Passes
that raise or time out are retried with exponential backoff.
"""

import asyncio
import logging

from spo.connectors.kubectl import KubectlConnectionError, KubectlConnector, KubectlExecutionError
from spo.core.config import settings
from spo.core.errors import ReconcileError
from spo.manager.project_manager import ProjectReconciler, ReconcileResult
from spo.utils.kubernetes import RESOURCE

logger = logging.getLogger(__name__)

ProjectKey = tuple[str, str]


def error_backoff(failures: int, base: float | None = None, maximum: float | None = None) -> float:
    """Delay before retrying after the given number of consecutive failed passes."""
    base = settings.ERROR_BACKOFF_BASE_SECONDS if base is None else base
    maximum = settings.ERROR_BACKOFF_MAX_SECONDS if maximum is None else maximum
    return min(base * 2 ** max(failures - 1, 0), maximum)


class OperatorLoop:
    """Schedules passes for every project in the watched namespace."""

    def __init__(
        self,
        kubectl_connector: KubectlConnector,
        reconciler: ProjectReconciler | None = None,
        namespace: str | None = None,
    ) -> None:
        self.kubectl_connector = kubectl_connector
        self.reconciler = reconciler or ProjectReconciler(kubectl_connector)
        self.namespace = namespace if namespace is not None else settings.WATCH_NAMESPACE or None
        self.results: dict[ProjectKey, ReconcileResult] = {}

        self._semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_RECONCILES)
        self._running: set[ProjectKey] = set()
        self._dirty: set[ProjectKey] = set()
        self._failures: dict[ProjectKey, int] = {}
        self._scheduled: dict[ProjectKey, tuple[float, asyncio.Task]] = {}
        self._resync_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._resync_task is not None and not self._resync_task.done()

    async def start(self) -> None:
        await self.kubectl_connector.wait_for_connection()
        self._resync_task = asyncio.create_task(self._resync_forever())
        logger.info(f"Operator loop started for {self.namespace or 'all namespaces'}")

    async def stop(self) -> None:
        tasks = [task for _, task in self._scheduled.values()]
        if self._resync_task is not None:
            tasks.append(self._resync_task)
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._scheduled.clear()
        self._resync_task = None
        logger.info("Operator loop stopped")

    async def resync(self) -> int:
        """
        List all projects and trigger a pass for each.

        Returns:
            Number of projects found
        """
        objects = await self.kubectl_connector.list_objects(RESOURCE, self.namespace)
        seen: set[ProjectKey] = set()
        for obj in objects:
            metadata = obj.get("metadata", {})
            key = (metadata.get("namespace", "default"), metadata["name"])
            seen.add(key)
            self.trigger(*key)

        for key in list(self.results):
            if key not in seen:
                del self.results[key]
                self._failures.pop(key, None)
        logger.debug(f"Resync found {len(objects)} SupabaseProject(s)")
        return len(objects)

    async def _resync_forever(self) -> None:
        while True:
            try:
                await self.resync()
            except (KubectlExecutionError, KubectlConnectionError) as e:
                logger.warning(f"Resync failed, retrying in {settings.RESYNC_INTERVAL_SECONDS}s: {e}")
            await asyncio.sleep(settings.RESYNC_INTERVAL_SECONDS)

    def trigger(self, namespace: str, name: str, delay: float = 0.0) -> None:
        """Schedule a pass; an earlier pending trigger for the same project wins."""
        key = (namespace, name)
        if key in self._running:
            self._dirty.add(key)
            return

        loop = asyncio.get_running_loop()
        due = loop.time() + delay
        scheduled = self._scheduled.get(key)
        if scheduled is not None:
            scheduled_due, task = scheduled
            if not task.done() and scheduled_due <= due:
                return
            task.cancel()

        self._scheduled[key] = (due, asyncio.create_task(self._run_after(key, delay)))

    async def _run_after(self, key: ProjectKey, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        scheduled = self._scheduled.get(key)
        if scheduled is not None and scheduled[1] is asyncio.current_task():
            del self._scheduled[key]
        await self.reconcile_now(*key)

    async def reconcile_now(self, namespace: str, name: str) -> ReconcileResult | None:
        """
        Run one pass immediately unless one is already in flight for the project.

        Returns:
            The pass result, None when the trigger was coalesced into a running pass
        """
        key = (namespace, name)
        if key in self._running:
            self._dirty.add(key)
            return None

        self._running.add(key)
        try:
            async with self._semaphore:
                result = await self._reconcile_once(key)
        finally:
            self._running.discard(key)

        self.results[key] = result
        if key in self._dirty:
            self._dirty.discard(key)
            self.trigger(namespace, name)
        elif result.requeue_after is not None:
            self.trigger(namespace, name, result.requeue_after)
        return result

    async def _reconcile_once(self, key: ProjectKey) -> ReconcileResult:
        namespace, name = key
        try:
            result = await asyncio.wait_for(
                self.reconciler.reconcile(namespace, name), timeout=settings.RECONCILE_TIMEOUT_SECONDS
            )
        except TimeoutError:
            return self._failed(key, f"pass exceeded {settings.RECONCILE_TIMEOUT_SECONDS}s", "Timeout")
        except (ReconcileError, KubectlExecutionError, KubectlConnectionError) as e:
            return self._failed(key, str(e), type(e).__name__)
        except Exception as e:
            logger.exception(f"Unexpected error reconciling {namespace}/{name}")
            return self._failed(key, str(e), type(e).__name__)

        self._failures.pop(key, None)
        return result

    def _failed(self, key: ProjectKey, error: str, reason: str) -> ReconcileResult:
        failures = self._failures.get(key, 0) + 1
        self._failures[key] = failures
        delay = error_backoff(failures)
        logger.error(f"Pass for {key[0]}/{key[1]} failed ({reason}), attempt {failures}, retrying in {delay}s: {error}")
        return ReconcileResult(namespace=key[0], name=key[1], error=error, reason=reason, requeue_after=delay)
