"""FastAPI application factory for Ballotguard."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ballotguard.common.config import get_settings
from ballotguard.common.logging import setup_logging
from ballotguard.common.schemas import HealthResponse


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from ballotguard.deps import get_db, get_scheduler
        db = get_db()
        await db.init()
        await db.create_all()
        scheduler = get_scheduler()
        if settings.scheduler_enabled:
            await scheduler.start()
        yield
        # Shutdown
        await scheduler.stop()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from ballotguard.elections.router import router as elections_router
    from ballotguard.secret_codes.router import router as secret_codes_router
    from ballotguard.eligibility.router import router as eligibility_router
    from ballotguard.votes.router import router as votes_router
    from ballotguard.audit.router import router as audit_router

    prefix = settings.api_prefix
    app.include_router(elections_router, prefix=prefix, tags=["elections"])
    app.include_router(secret_codes_router, prefix=prefix, tags=["secret-codes"])
    app.include_router(eligibility_router, prefix=prefix, tags=["eligibility"])
    app.include_router(votes_router, prefix=prefix, tags=["votes"])
    app.include_router(audit_router, prefix=prefix, tags=["audit"])

    return app
