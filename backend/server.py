from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
import uuid
from contextlib import asynccontextmanager
from database import database
from routes import auth, clients, appointments, pdf_exports, pdf_generate, email, cron, planning, workspace, account_center

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.jobstores.mongodb import MongoDBJobStore

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Scheduler
mongo_url = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
db_name = os.environ.get('DB_NAME', 'perpetual_wealth_partners')

def _build_jobstores() -> dict:
    """MongoDB job store so scheduled jobs survive restarts; memory store under pytest or on failure."""
    if os.getenv("PYTEST_RUNNING"):
        return {}
    try:
        from pymongo import MongoClient
        store = MongoDBJobStore(
            database=db_name,
            collection='scheduled_jobs',
            client=MongoClient(mongo_url)
        )
        logger.info(f"MongoDB job store configured: {db_name}.scheduled_jobs")
        return {'default': store}
    except Exception as e:
        logger.warning(f"Failed to configure MongoDB job store, using memory store: {e}")
        return {}

scheduler = AsyncIOScheduler(jobstores=_build_jobstores())

# Job runners are shared with the cron endpoint
from job_runner import run_appointment_reminders

# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Perpetual Wealth Partners Planning API")
    await database.connect()

    if not os.getenv("POSTMARK_SERVER_TOKEN"):
        logger.warning("POSTMARK_SERVER_TOKEN is not set. Report and reminder emails will be logged only.")

    # Appointment reminders - every hour on the hour
    scheduler.add_job(
        run_appointment_reminders,
        CronTrigger(minute=0),
        id="appointment_reminders",
        name="Appointment Reminders",
        replace_existing=True
    )

    scheduler.start()
    logger.info("Background job scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down Perpetual Wealth Partners Planning API")
    scheduler.shutdown(wait=False)
    logger.info("Background job scheduler stopped")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="Perpetual Wealth Partners Planning API",
    description="Client records, planning calculators, reports and reminders for financial advisers",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(auth.users_router)
app.include_router(clients.router)
app.include_router(appointments.router)
app.include_router(pdf_exports.router)
app.include_router(pdf_generate.router)
app.include_router(email.router)
app.include_router(cron.router)
app.include_router(planning.router)
app.include_router(workspace.router)
app.include_router(account_center.router)

# Root endpoint
@app.get("/api")
async def root():
    return {
        "service": "Perpetual Wealth Partners Planning API",
        "version": "1.0.0",
        "status": "operational"
    }

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


# Version/build stamp for deployment verification (commit SHA set by CI/CD)
@app.get("/api/version")
async def version_info():
    return {
        "commit_sha": os.getenv("GIT_COMMIT_SHA", os.getenv("BUILD_SHA", "unknown")),
        "environment": os.getenv("ENVIRONMENT", "development"),
    }

# Validation error handler: request_id + full errors (loc path) for debugging client payloads
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(errors), "request_id": request_id},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
