# clinicdesk/routers/health.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import __version__, crud, schemas, security
from ..database import get_db, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
    responses={404: {"description": "Not found"}},
)


@router.get("")
def liveness(db: Session = Depends(get_db)):
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database probe failed: {e}")
        database = "unavailable"
    return {"status": "ok", "version": __version__, "database": database, "time": utcnow().isoformat()}


@router.get("/consistency-check", response_model=schemas.ConsistencyReport,
            dependencies=[Depends(security.require_admin)])
def check_system_consistency(db: Session = Depends(get_db)):
    """
    Look for live appointments that overlap each other and rows that break
    the booking rules. Accessible only by admin users.
    """
    logger.info("Running appointment consistency checks")
    report = crud.run_consistency_checks(db)
    logger.info(
        f"Consistency checks completed: {len(report['overlapping_appointments'])} overlaps, "
        f"{len(report['malformed_appointments'])} malformed rows"
    )
    return report
