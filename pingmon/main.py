import logging
import os
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from pingmon.api.error_handlers import register_error_handlers
from pingmon.api.probe import router as probe_router
from pingmon.api.routes import router as api_router
from pingmon.config import VERSION, Settings, get_settings
from pingmon.db import create_db_engine
from pingmon.init_db import init_db
from pingmon.logging_setup import configure_logging
from pingmon.monitor import SessionEngine
from pingmon.prober import Prober
from pingmon.store import ResultStore
from pingmon.ws.monitor import monitor_ws
from pingmon.ws.subscribers import SubscriberRegistry

log = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, prober: Optional[Prober] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(title="Ping Monitor", version=VERSION)

    db_engine = create_db_engine(settings.DATABASE_PATH)
    init_db(db_engine)
    store = ResultStore(db_engine)
    registry = SubscriberRegistry()

    app.state.settings = settings
    app.state.db_engine = db_engine
    app.state.store = store
    app.state.registry = registry
    app.state.engine = SessionEngine(store, prober or Prober(), registry)

    app.include_router(api_router)
    app.include_router(probe_router)
    app.add_api_websocket_route("/ws", monitor_ws)
    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # mounted last so API and WebSocket routes win
    if settings.STATIC_DIR:
        if os.path.isdir(settings.STATIC_DIR):
            app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="static-root")
        else:
            log.warning("STATIC_DIR %s does not exist; static files disabled", settings.STATIC_DIR)

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.engine.shutdown()
        db_engine.dispose()

    log.info(
        "Ping monitor %s configured: host=%s port=%s database=%s origins=%s",
        VERSION,
        settings.HOST,
        settings.PORT,
        settings.DATABASE_PATH,
        settings.ALLOWED_ORIGINS,
    )
    return app


def run() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
