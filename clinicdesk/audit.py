import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models


class AuditTrail:
	"""Stores audit events in the AuditLog table.

	Writes go through the caller's session after the main change has been
	committed. A failed audit write is logged and never fails the request.
	"""

	def __init__(self):
		self.logger = logging.getLogger("clinicdesk.audit")

	@staticmethod
	def _normalize_action(action: str) -> models.AuditAction:
		action_upper = (action or "").upper()
		try:
			return models.AuditAction[action_upper]
		except KeyError:
			pass
		if "LOGIN" in action_upper:
			return models.AuditAction.LOGIN
		if "LOGOUT" in action_upper:
			return models.AuditAction.LOGOUT
		if action_upper.endswith("_CREATE") or action_upper.startswith("CREATE_"):
			return models.AuditAction.CREATE
		if action_upper.endswith("_DELETE") or action_upper.startswith("DELETE_"):
			return models.AuditAction.DELETE
		if "DENIED" in action_upper:
			return models.AuditAction.ACCESS_DENIED
		# Status changes and other mutations
		return models.AuditAction.UPDATE

	def log_event(
		self,
		db: Session,
		user: Optional[models.User],
		action: str,
		category: str,
		details: Optional[str] = None,
		severity: str = "INFO",
		resource_type: Optional[str] = None,
		resource_id: Optional[int] = None,
		new_values: Optional[Dict[str, Any]] = None,
		ip_address: Optional[str] = None,
	) -> None:
		db_log = models.AuditLog(
			user_id=user.id if user else None,
			username=user.email if user else "System",
			action=self._normalize_action(action),
			category=category or "GENERAL",
			severity=severity or "INFO",
			resource_type=resource_type,
			resource_id=resource_id,
			details=details,
			new_values=new_values,
			ip_address=ip_address,
			timestamp=datetime.now(timezone.utc),
		)
		try:
			db.add(db_log)
			db.commit()
		except SQLAlchemyError as e:
			db.rollback()
			self.logger.error(f"Failed to save audit log: {e}")
		self.logger.info(
			f"{db_log.action.value} {category} {resource_type or ''}:{resource_id or ''} by {db_log.username}"
		)


audit_trail = AuditTrail()
