# krishi/main.py - Main FastAPI application
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from krishi.api.endpoints import advisory
from krishi.core.config import settings
from krishi.core.logging_config import setup_logging
from krishi.core.performance_monitor import PerformanceMonitor
from krishi.core.rag_pipeline import AdvisoryRAGPipeline

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    logger.info("Starting Krishi Sakha advisory service...")

    try:
        if settings.USE_DISK_CACHE:
            os.makedirs(settings.CACHE_DIR, exist_ok=True)
        if not settings.GOOGLE_API_KEY:
            logger.warning("⚠️ GOOGLE_API_KEY not set, answers will use the offline knowledge base")

        app.state.monitor = PerformanceMonitor()
        app.state.pipeline = AdvisoryRAGPipeline.create(settings, monitor=app.state.monitor)
        logger.info("✅ Advisory pipeline initialized successfully")
        logger.info("🚀 Application startup complete")
    except Exception as e:
        logger.error(f"❌ Failed to initialize application: {e}")
        raise

    yield

    logger.info("🔄 Shutting down application...")
    try:
        logger.info(f"📊 Final cache stats: {app.state.pipeline.cache.get_stats()}")
        await app.state.pipeline.close()
        logger.info("✅ Shutdown complete")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Multilingual agricultural advisory with live data grounding and honest degradation",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        if request.url.path.startswith("/api"):
            logger.info(
                f"{request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Time: {process_time:.2f}s"
            )

        response.headers["X-Process-Time"] = str(process_time)
        return response

    except Exception as e:
        process_time = time.time() - start_time
        logger.error(
            f"{request.method} {request.url.path} - "
            f"Error: {str(e)} - "
            f"Time: {process_time:.2f}s"
        )
        raise


app.include_router(advisory.router, prefix=settings.API_V1_STR, tags=["Advisory"])


@app.get("/", tags=["Root"])
async def read_root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": VERSION,
        "status": "operational",
        "languages": ["en", "hi", "bn", "ta", "te", "mr", "gu", "pa"],
        "data_categories": ["weather", "market", "advisory", "soil", "scheme"],
    }


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint"""
    try:
        pipeline = getattr(request.app.state, "pipeline", None)
        if pipeline is None:
            return {"status": "unhealthy", "components": {"pipeline": "missing"}, "timestamp": time.time()}

        generation = "healthy" if pipeline.generator and pipeline.generator.available else "offline"
        online = pipeline.connectivity.status()["online"]
        return {
            "status": "healthy" if generation == "healthy" and online is not False else "degraded",
            "components": {
                "pipeline": "healthy",
                "generation": generation,
                "network": {True: "online", False: "offline"}.get(online, "unknown"),
                "cache": "healthy",
            },
            "timestamp": time.time(),
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {"status": "unhealthy", "error": str(e), "timestamp": time.time()}


@app.get("/cache/stats", tags=["Cache"])
async def get_cache_stats(request: Request):
    """Get detailed cache statistics"""
    try:
        return {"cache_stats": request.app.state.pipeline.cache.get_stats(), "timestamp": time.time()}
    except Exception as e:
        logger.error(f"Error getting cache stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to get cache statistics")


@app.post("/cache/clear", tags=["Cache"])
async def clear_cache(request: Request):
    """Clear all caches"""
    try:
        cache = request.app.state.pipeline.cache
        old_stats = cache.get_stats()
        cache.clear()
        logger.info("Cache cleared manually")
        return {
            "message": "Cache cleared successfully",
            "old_stats": old_stats,
            "new_stats": cache.get_stats(),
            "timestamp": time.time(),
        }
    except Exception as e:
        logger.error(f"Error clearing cache: {e}")
        raise HTTPException(status_code=500, detail="Failed to clear cache")


@app.get("/metrics", tags=["Monitoring"])
async def get_metrics(request: Request):
    """Get system metrics for monitoring"""
    try:
        return {
            "performance": request.app.state.monitor.get_stats(),
            "pipeline": request.app.state.pipeline.get_stats(),
            "models": {"llm_model": settings.LLM_MODEL_NAME},
            "timestamp": time.time(),
        }
    except Exception as e:
        logger.error(f"Error getting metrics: {e}")
        raise HTTPException(status_code=500, detail="Failed to get metrics")
