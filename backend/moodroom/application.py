from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from moodroom.api.router import api_router
from moodroom.config import Settings, settings as default_settings
from moodroom.runtime import CollabRuntime


def create_app(config: Settings | None = None, runtime: CollabRuntime | None = None) -> FastAPI:
    app_settings = config if config is not None else default_settings
    app = FastAPI(title="Moodroom Backend", version="1.0.0")
    app.state.runtime = runtime if runtime is not None else CollabRuntime(config=app_settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.on_event("startup")
    async def on_startup() -> None:
        app.state.runtime.start_sweeper()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await app.state.runtime.shutdown()

    return app
