#!/usr/bin/env python3

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pustak.routes import api
from pustak.configs import OPTIONS, LOG_LEVEL, CORS_ORIGINS
from pustak.core import db
from pustak import __version__ as VERSION

def configure_logging():
    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

def create_app(session_factory=None):
    """Builds the API. Without a session factory the database is
    initialised, and its schema checked, when the app starts."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        if getattr(app.state, 'session_factory', None) is None:
            app.state.session_factory = db.init()
        yield

    app = FastAPI(
        title="Pustak API",
        description="Pustak: catalog consistency and bulk ingestion for library circulation",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS or ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api.router, prefix="/v1/api")
    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("pustak.app:app", **OPTIONS)
