#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Main application entry point - OpenAI to NVIDIA NIM proxy
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nim_proxy import __version__
from nim_proxy.config import Settings, get_settings
from nim_proxy.errors import build_error_body, not_found_error
from nim_proxy.helpers import configure_structlog, error_log, info_log
from nim_proxy.openai_api import router as openai_router
from nim_proxy.services import ChatCompletionService, NetworkManager


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_structlog(settings.LOG_LEVEL)

    service = ChatCompletionService(settings, NetworkManager(settings, transport=transport))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        info_log(
            f"{settings.SERVICE_NAME} running on port {settings.LISTEN_PORT}",
            upstream=settings.NIM_API_BASE,
        )
        info_log(f"Health check: http://localhost:{settings.LISTEN_PORT}/health")
        try:
            yield
        finally:
            await service.close()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        description="OpenAI-compatible API server for NVIDIA NIM",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        error_log("[REQUEST] 请求体校验失败", path=request.url.path, errors=len(exc.errors()))
        message = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        ) or "Invalid request body"
        return JSONResponse(status_code=400, content=build_error_body(message, 400))

    @app.api_route("/health", methods=["GET", "HEAD"])
    async def health():
        """Health check endpoint"""
        return {"status": "ok", "service": settings.SERVICE_NAME}

    app.include_router(openai_router)

    # 必须最后注册：兜底所有未匹配的路径和方法
    @app.api_route(
        "/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
        include_in_schema=False,
    )
    async def not_found(request: Request):
        status_code, body = not_found_error(request.url.path)
        return JSONResponse(status_code=status_code, content=body)

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.LISTEN_HOST,
        port=settings.LISTEN_PORT,
        http="httptools",
        reload=False,
        log_level="info" if settings.LOG_LEVEL != "false" else "critical",
    )


if __name__ == "__main__":
    run()
