# Initial data created on startup.
import logging

from . import crud, models
from .config import get_settings
from .database import SessionLocal

logger = logging.getLogger(__name__)


def create_initial_data():
    """Ensure the default clinic exists."""
    settings = get_settings()
    db = SessionLocal()
    try:
        crud.get_or_create_default_clinic(
            db,
            name=settings.default_clinic_name,
            color_hex=settings.default_clinic_color,
            opening_hour=settings.business_opening_hour,
            closing_hour=settings.business_closing_hour,
        )
    except crud.CRUDError as e:
        logger.error(f"CRITICAL: Error during initial data creation: {e}")
    finally:
        db.close()


def promote_admin(email: str) -> bool:
    """Give an existing account the admin role. False when no such account exists."""
    db = SessionLocal()
    try:
        user = crud.get_user_by_email(db, email)
        if user is None:
            return False
        user.role = models.UserRole.admin
        user.is_active = True
        db.commit()
        logger.info(f"User {email} promoted to admin.")
        return True
    finally:
        db.close()
