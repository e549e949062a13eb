from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import time

from .core.config import settings
from .core.database import close_db_connections
from .core.cache import cache
from .core.logging import setup_logging
from .core.error_handlers import register_exception_handlers

from .routers import health, missions, mission_mentors, mentorship_groups, attendance

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Starting MissionHub Roster API")

    await cache.connect()
    logger.info("Cache initialized" if cache.enabled else "Cache disabled")

    yield

    logger.info("Shutting down MissionHub Roster API")
    await cache.disconnect()
    await close_db_connections()
    logger.info("Shutdown complete")

app = FastAPI(
    title="MissionHub Roster API",
    description="Mission enrollment, mentor assignment, mentorship groups and attendance",
    version=settings.app_version,
    lifespan=lifespan
)

@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    logger.info(f"{request.method} {request.url.path} - {process_time:.3f}s")
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

register_exception_handlers(app)

app.include_router(health.router)
app.include_router(missions.router)
app.include_router(mission_mentors.router)
app.include_router(mentorship_groups.router)
app.include_router(attendance.router)

@app.get("/")
async def root():
    return {
        "message": f"MissionHub Roster API v{settings.app_version}",
        "version": settings.app_version,
        "features": ["Mission enrollment", "Mentor assignment", "Mentorship groups", "Attendance"],
        "status": "active"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
