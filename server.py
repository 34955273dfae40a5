#!/usr/bin/env python3
"""
Library Server
REST API over the library database (borrowers, items, checkouts, history)

Routes for every entity are registered by transport/registrar.py below the
configured API prefix; /healthz reports database connectivity.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from auth import Authorizer, User, request_state_user
from config import DatabaseConfig, ServerConfig
from container import EntityContainer
from database import DatabaseConnection
from transport.registrar import RouteRegistrar

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


def create_app(
    server_config: Optional[ServerConfig] = None,
    db: Optional[DatabaseConnection] = None,
    authorizer: Optional[Authorizer] = None,
    user_provider: Callable[[Request], Optional[User]] = request_state_user,
) -> FastAPI:
    """
    Build the FastAPI app with all entity routes registered.

    When `db` is not given, a connection is configured from the environment
    and its pool is opened and closed with the app's lifespan.
    """
    server_config = server_config or ServerConfig.from_environment()
    owns_db = db is None
    if owns_db:
        db = DatabaseConnection(DatabaseConfig.from_environment())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_db:
            await db.connect()
        logger.info(f"Library server {__version__} serving {server_config.api_prefix}")
        try:
            yield
        finally:
            if owns_db:
                await db.disconnect()

    app = FastAPI(title="Library Server", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    entities = EntityContainer(db, server_config)
    registrar = RouteRegistrar(app, server_config, authorizer, user_provider)
    for entity in entities.all():
        registrar.register_entity(entity)

    app.state.db = db
    app.state.entities = entities

    @app.get("/healthz")
    async def health_check():
        """Health check endpoint"""
        if await db.check_connection():
            return JSONResponse(content={"status": "healthy", "database": "connected"})
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "unhealthy", "database": "unreachable"},
        )

    return app


def cli_entry():
    """Entry point for console script"""
    import argparse

    parser = argparse.ArgumentParser(description="Library Server")
    parser.add_argument('--version', '-v', action='store_true', help='Show version')
    parser.add_argument('--host', type=str, default=None, help='Host to bind to (default: HOST or 127.0.0.1)')
    parser.add_argument('--port', type=int, default=None, help='Port to listen on (default: PORT or 3000)')

    args = parser.parse_args()

    if args.version:
        print(f"library-server version {__version__}")
        sys.exit(0)

    logging.basicConfig(level=logging.INFO)

    server_config = ServerConfig.from_environment()
    host = args.host or server_config.host
    port = args.port or server_config.port

    logger.info(f"Starting library server on http://{host}:{port}{server_config.api_prefix}")
    uvicorn.run(create_app(server_config), host=host, port=port, log_level="info")


if __name__ == "__main__":
    cli_entry()
