"""
FastAPI application for the team-mode performance pipeline.

Run with:  uvicorn scouting.main:app  (from backend/)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from scouting.ai_service import AIService
from scouting.config import Settings, get_settings
from scouting.database import Base, SessionLocal
from scouting.file_storage import FileStorage
from scouting.jobs import JobQueue, JobWorker
from scouting.pipeline import PipelineOrchestrator
from scouting.report_composer import ReportComposer
from scouting.report_service import ReportService
from scouting.routes import router
from scouting.store import SqlPerformanceStore

logging.basicConfig(
    level=logging.INFO,
    format='{"time":"%(asctime)s","level":"%(levelname)s","message":"%(message)s","module":"%(name)s"}',
)
logger = logging.getLogger(__name__)


def create_app(session_factory=None, ai_service=None, settings: Settings = None) -> FastAPI:
    settings = settings or get_settings()
    session_factory = session_factory or SessionLocal
    ai_service = ai_service or AIService()

    store = SqlPerformanceStore(session_factory)
    storage = FileStorage(settings.upload_dir)
    orchestrator = PipelineOrchestrator(store, storage, ai_service, settings)
    queue = JobQueue(session_factory)
    worker = JobWorker(session_factory, orchestrator, settings.worker_pool_size)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Connecting to database to create tables...")
        Base.metadata.create_all(bind=session_factory.kw["bind"])
        worker.recover_interrupted()
        resumed = worker.resume_queued(queue)
        if resumed:
            logger.info(f"Resumed {resumed} queued job(s)")
        yield
        worker.shutdown(wait_for_jobs=False)

    app = FastAPI(title="Team-mode performance pipeline", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.storage = storage
    app.state.queue = queue
    app.state.worker = worker
    app.state.reports = ReportService(store, ReportComposer(ai_service))
    app.include_router(router)

    @app.get("/health")
    def health_check():
        try:
            with session_factory() as db:
                db.execute(text("SELECT 1"))
            return {"status": "ok", "database_connection": "successful"}
        except Exception as e:
            return {"status": "error", "database_connection": "failed", "error": str(e)}

    return app


app = create_app()
