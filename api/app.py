"""
api/app.py: FastAPI app instance + identity middleware + error mapping
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.identity import read_identity
from api.routes import router
from jee_mains_cbt.db.database import Database
from jee_mains_cbt.errors import CbtError
from jee_mains_cbt.services.attempt_service import AttemptManager

logger = logging.getLogger(__name__)


def create_app(db: Optional[Database] = None) -> FastAPI:
    app = FastAPI(title="JEE Main CBT", docs_url=None, redoc_url=None)

    if db is None:
        db = Database()
    db.create_all()
    app.state.db = db
    app.state.attempts = AttemptManager(db)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Identity middleware: attach the gateway-verified caller to the request
    @app.middleware("http")
    async def identity_middleware(request: Request, call_next):
        request.state.identity = read_identity(request)
        return await call_next(request)

    @app.exception_handler(CbtError)
    async def cbt_error_handler(request: Request, exc: CbtError):
        level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(level, f"{request.method} {request.url.path} -> {exc.status_code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(router)
    return app
