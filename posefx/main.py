from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from posefx.api.rest import router as rest_router
from posefx.services.runtime import build_runtime

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def create_app(config_path: Path = DEFAULT_CONFIG_PATH) -> FastAPI:
    runtime = build_runtime(Path(config_path))
    logging.basicConfig(
        level=runtime.config_store.config.server.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        runtime.session_manager.stop()

    app = FastAPI(title="posefx", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime
    app.include_router(rest_router)
    return app


def run() -> None:
    import uvicorn

    app = create_app()
    server = app.state.runtime.config_store.config.server
    uvicorn.run(app, host=server.host, port=int(server.port))


if __name__ == "__main__":
    run()
