from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging

from habitcontrol.core.config import settings
from habitcontrol.core.errors import (
    AuthenticationRequired,
    HabitControlError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from habitcontrol.routes import auth, habits
from habitcontrol.services.habit_repository import (
    LocalCompletionRepository,
    LocalHabitRepository,
    SqlCompletionRepository,
    SqlHabitRepository,
)
from habitcontrol.services.habit_store import HabitStore
from habitcontrol.services.persistence import FileKeyValueStore, KeyValueStore
from habitcontrol.services.profile_service import ProfileService


# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

ERROR_STATUS = [
    (ValidationError, 422),
    (AuthenticationRequired, 401),
    (NotFoundError, 404),
    (PersistenceError, 503),
]


def build_store(kv: KeyValueStore) -> HabitStore:
    """Habit store wired to the configured storage backend"""
    if settings.storage_backend == "sql":
        from habitcontrol.db.base import SessionLocal
        return HabitStore(SqlHabitRepository(SessionLocal), SqlCompletionRepository(SessionLocal))
    return HabitStore(LocalHabitRepository(kv), LocalCompletionRepository(kv))


def create_app(kv: Optional[KeyValueStore] = None, store: Optional[HabitStore] = None) -> FastAPI:
    kv = kv or FileKeyValueStore(settings.data_dir)
    store = store or build_store(kv)
    profiles = ProfileService(kv)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting {settings.app_name} API (storage: {settings.storage_backend})")
        if settings.storage_backend == "sql":
            from habitcontrol.db.session import create_tables
            create_tables()

        session = await profiles.current_session()
        if session:
            try:
                await store.sign_in(session)
            except PersistenceError as e:
                logger.error(f"Could not restore session for {session.owner_id}, sign in again: {e}")
        yield
        # Shutdown
        logger.info("Shutting down API")

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Habit scheduling and completion tracking",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.store = store
    app.state.profiles = profiles

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HabitControlError)
    async def habit_error_handler(request: Request, exc: HabitControlError):
        status_code = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 400)
        content = {"detail": exc.message}
        if isinstance(exc, ValidationError) and exc.field:
            content["field"] = exc.field
        return JSONResponse(status_code=status_code, content=content)

    # Include routers
    app.include_router(auth.router, prefix="/auth", tags=["auth"])
    app.include_router(habits.router, prefix="/habits", tags=["habits"])

    @app.get("/health")
    async def health():
        return {"status": "healthy", "app": settings.app_name, "session": store.state.value}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
