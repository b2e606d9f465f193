"""Embedding service main application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from libs.common.config import EmbeddingConfig
from libs.common.logging import configure_logging
from .api.routes import router as api_router
from .encoders.embedding_manager import EmbeddingManager
from .loaders.preload import PreloadOrchestrator
from .runtime.metrics import get_metrics_collector
from .runtime.model_cache import ModelCache

logger = structlog.get_logger("embedding_service")

SERVICE_NAME = "embedding-service"


def create_app(config: Optional[EmbeddingConfig] = None) -> FastAPI:
    """Build the FastAPI application.

    Service state (model cache, orchestrator, manager, metrics) is created in
    the lifespan handler and hung off ``app.state``; routes reach it through
    dependencies.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        service_config = config or EmbeddingConfig()
        configure_logging(SERVICE_NAME, service_config.ml_log_level, service_config.ml_log_format)
        app.state.config = service_config
        app.state.startup_time = time.time()

        logger.info("Starting embedding service", env=service_config.ml_env)

        metrics_collector = get_metrics_collector(SERVICE_NAME)
        model_cache = ModelCache(on_change=metrics_collector.set_model_loaded)
        app.state.metrics_collector = metrics_collector
        app.state.model_cache = model_cache
        app.state.embedding_manager = EmbeddingManager(model_cache, metrics=metrics_collector)
        app.state.preload_orchestrator = PreloadOrchestrator(
            service_config,
            model_cache,
            metrics=metrics_collector,
        )

        logger.info("Embedding service started successfully")

        yield

        logger.info("Shutting down embedding service")
        await model_cache.clear()
        logger.info("Embedding service shutdown complete")

    app = FastAPI(
        title="Embedding Service",
        description="Serves text embeddings from a preloaded GGUF or ONNX model",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to responses."""
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.exception("Unhandled error", path=request.url.path, error=str(e))
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": str(e)}
            )

        if hasattr(app.state, "metrics_collector"):
            app.state.metrics_collector.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status=status_code,
                duration=time.time() - start_time
            )

        return response

    @app.get("/health")
    async def health_check():
        """Health check endpoint; healthy whether or not a model is loaded."""
        model_cache: Optional[ModelCache] = getattr(app.state, "model_cache", None)
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "model_loaded": model_cache.is_loaded() if model_cache else False,
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        if hasattr(app.state, "metrics_collector"):
            return Response(content=app.state.metrics_collector.get_metrics(), media_type="text/plain")
        return Response(content="# No metrics available\n", media_type="text/plain")

    @app.get("/status")
    async def status():
        """Describe the active model, if any."""
        model_cache: Optional[ModelCache] = getattr(app.state, "model_cache", None)
        info = model_cache.info() if model_cache else None
        return {
            "service": SERVICE_NAME,
            "model_loaded": model_cache.is_loaded() if model_cache else False,
            "model": info.to_dict() if info else None,
            "uptime_seconds": time.time() - getattr(app.state, "startup_time", time.time()),
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "embedding_service.main:app",
        host="0.0.0.0",
        port=EmbeddingConfig().ml_embedding_port,
        log_level="info"
    )
