import logging
import sqlite3
from contextlib import asynccontextmanager
from fastapi import FastAPI

from intake.config import settings
from intake.database import init_db
from intake.routers import costings, documents, file_costings, settings as settings_router, webhooks, workflow
from intake.utils.filesystem import ensure_data_dirs

logger = logging.getLogger("intake")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Startup: create storage directories, schema and pending migrations
    ensure_data_dirs()
    init_db()
    try:
        conn = sqlite3.connect(str(settings.db_path))
        result = conn.execute("PRAGMA integrity_check").fetchone()
        conn.close()
        if result and result[0] == "ok":
            logger.info("Database integrity check passed.")
        else:
            logger.error("DATABASE INTEGRITY CHECK FAILED: %s", result)
    except sqlite3.Error as exc:
        logger.error("Could not run startup integrity check: %s", exc)
    yield


app = FastAPI(
    title="Freight Document Intake",
    description="Duplicate detection, costing-sheet extraction and review workflow for shipping documents",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(documents.router, prefix=settings.api_prefix)
app.include_router(workflow.router, prefix=settings.api_prefix)
app.include_router(costings.router, prefix=settings.api_prefix)
app.include_router(file_costings.router, prefix=settings.api_prefix)
app.include_router(settings_router.router, prefix=settings.api_prefix)
app.include_router(webhooks.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}
