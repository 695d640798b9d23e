import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from api.admin_registry_routes import router as admin_registry_router
from api.checkpoint_routes import router as checkpoint_router
from api.scan_routes import router as scan_router
from api.sync_routes import router as sync_router
from core.config import Settings, get_settings
from db.session import build_engine, create_db_and_tables
from services.clock import Clock, SystemClock
from services.local_cache import SqlLocalCache
from services.reconciliation import ReconciliationClient
from services.registry import CheckpointRegistry, OfficerRegistry, ensure_registries
from services.remote_store import AppsScriptRemoteStore, RemoteStore
from services.scan_store import ScanRecordStore
from services.verification_service import VerificationEngine

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# This file is the control center of the whole application


def create_app(
    settings: Optional[Settings] = None,
    engine=None,
    remote: Optional[RemoteStore] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build the API. Tests pass an in-memory engine and fake remote / clock;
    production builds everything from the environment.
    """
    settings = settings or get_settings()

    # When We Start, Create the DB Tables and make sure the registries are usable
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_engine = engine if engine is not None else build_engine(settings.database_url)
        create_db_and_tables(db_engine)
        session_factory = partial(Session, db_engine)
        ensure_registries(session_factory)

        remote_store = remote
        if remote_store is None and settings.sync_enabled:
            remote_store = AppsScriptRemoteStore(
                settings.sheet_script_url, timeout_s=settings.remote_timeout_seconds
            )

        checkpoints = CheckpointRegistry(session_factory)
        officers = OfficerRegistry(session_factory)
        store = ScanRecordStore(session_factory)
        sync = ReconciliationClient(
            remote_store, SqlLocalCache(session_factory), settle_seconds=settings.sync_settle_seconds
        )
        verification_engine = VerificationEngine(
            checkpoints,
            officers,
            store,
            clock or SystemClock(settings.patrol_timezone),
            settings,
            sync=sync,
        )

        app.state.settings = settings
        app.state.checkpoint_registry = checkpoints
        app.state.officer_registry = officers
        app.state.scan_store = store
        app.state.remote_store = remote_store
        app.state.reconciliation_client = sync
        app.state.verification_engine = verification_engine

        if sync.enabled:
            logger.info("[SYNC] Remote sync enabled; initial pull scheduled")
            sync.schedule_pull(delay=0)
        else:
            logger.info("[SYNC] No SHEET_SCRIPT_URL set; running local-only")

        yield

        verification_engine.shutdown()
        await sync.aclose()
        if engine is None:
            db_engine.dispose()

    # Starts Fast API Up; Init
    app = FastAPI(title="SecurePatrol", lifespan=lifespan)

    print(f"🌐 CORS: Allowing origins: {settings.allowed_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(scan_router, prefix="/scans", tags=["Scans"])
    app.include_router(checkpoint_router, tags=["Checkpoints", "Geofence"])
    app.include_router(admin_registry_router, prefix="/admin", tags=["Admin", "Registry"])
    app.include_router(sync_router, prefix="/sync", tags=["Sync"])

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "sync_enabled": app.state.reconciliation_client.enabled}

    return app


app = create_app()
