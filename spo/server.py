import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

# Initialize logging first, before any other imports that might log
from spo.core.early_logging import initialize_logging  # noqa: F401, I001
from spo.connectors.kubectl import KubectlConnector, create_kubectl_connector
from spo.core.config import PROJECT_DESCRIPTION, PROJECT_NAME, VERSION, settings
from spo.core.operator_loop import OperatorLoop
from spo.status.phase import is_phase_healthy

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    logger.info(f"Starting {PROJECT_NAME} version {VERSION}")

    operator_loop: OperatorLoop | None = getattr(app.state, "operator_loop", None)
    if operator_loop is None:
        operator_loop = OperatorLoop(create_kubectl_connector())
        app.state.operator_loop = operator_loop

    await operator_loop.start()

    yield

    await operator_loop.stop()
    logger.info(f"Stopping {PROJECT_NAME} version {VERSION}")


def create_app(operator_loop: OperatorLoop | None = None) -> FastAPI:
    app = FastAPI(
        lifespan=lifespan,
        title="Supabase Project Operator",
        summary=PROJECT_DESCRIPTION,
        version=VERSION,
        debug=settings.DEBUG,
    )
    app.state.operator_loop = operator_loop

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz() -> JSONResponse:
        loop: OperatorLoop | None = app.state.operator_loop
        ready = KubectlConnector.isConnected and loop is not None and loop.is_running
        return JSONResponse(
            content={"status": "ready" if ready else "not ready", "kubectl": KubectlConnector.isConnected},
            status_code=200 if ready else 503,
        )

    @app.get("/projects")
    async def projects() -> list[dict[str, Any]]:
        loop: OperatorLoop | None = app.state.operator_loop
        if loop is None:
            return []
        return [
            {**asdict(result), "healthy": is_phase_healthy(result.phase)} for _, result in sorted(loop.results.items())
        ]

    return app


def main() -> None:
    uvicorn.run(create_app(), host=settings.HEALTH_HOST, port=settings.HEALTH_PORT, log_config=None)


if __name__ == "__main__":
    main()
