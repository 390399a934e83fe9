import logging
from drying.database import SessionLocal
from drying.models import DryingRun, RunStatus
from drying.services.cost_service import DryingCostService
from drying.services.errors import ReconciliationError

logger = logging.getLogger(__name__)


def update_running_costs_job():
    """
    Scheduled job to recalculate the cost of every run still in progress,
    so running hours keep up with readings taken during the day.
    """
    logger.info("Starting scheduled drying cost update")
    session = SessionLocal()
    try:
        runs = session.query(DryingRun).filter(DryingRun.status == RunStatus.IN_PROGRESS).all()
        service = DryingCostService(session)

        for run in runs:
            logger.info(f"Updating cost for {run.batch_number} (ID: {run.id})")
            try:
                service.recalculate_run(run.id)
            except ReconciliationError as e:
                logger.error(f"Error updating cost for run {run.id}: {e}")
                session.rollback()
    except Exception as e:
        logger.error(f"Scheduler job failed: {e}")
        raise
    finally:
        session.close()
    logger.info("Scheduled drying cost update completed")
