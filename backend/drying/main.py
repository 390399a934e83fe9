from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
import pytz

from drying.config import settings
from drying.api import drying_runs, electricity, cost_settings
from drying.tasks.cost_update import update_running_costs_job


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create scheduler
scheduler = AsyncIOScheduler(timezone=pytz.timezone(settings.schedule_timezone))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting application...")
    # Schema is managed by Alembic migrations
    scheduler.start()

    scheduler.add_job(
        update_running_costs_job,
        'cron',
        hour=settings.recalculation_hour,
        minute=0,
        id='running_cost_update',
        replace_existing=True
    )
    logger.info(f"Scheduled running cost update for {settings.recalculation_hour:02d}:00 {settings.schedule_timezone}")

    yield
    # Shutdown
    logger.info("Shutting down application...")
    scheduler.shutdown()


app = FastAPI(
    title="Kiln Cost Tracker",
    description="Drying runs, prepaid electricity recharges and drying cost reconciliation",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(drying_runs.router, prefix="/api/drying-runs", tags=["Drying Runs"])
app.include_router(electricity.router, prefix="/api/electricity", tags=["Electricity"])
app.include_router(cost_settings.router, prefix="/api/settings", tags=["Settings"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {"message": "Kiln Cost Tracker API", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("drying.main:app", host=settings.api_host, port=settings.api_port)
