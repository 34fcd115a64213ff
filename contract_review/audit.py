"""Best-effort audit trail of user actions."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request
from sqlalchemy.orm import Session

from contract_review import models
from contract_review.database import Database

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes audit entries without ever failing the calling operation."""

    def __init__(self, database: Database):
        self.database = database

    def record(
        self,
        organization_id: str,
        user_id: str,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Append an audit entry in its own session; failures are only logged."""
        try:
            with self.database.session() as db:
                db.add(models.AuditLog(
                    organization_id=organization_id,
                    user_id=user_id,
                    action=action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    audit_metadata=metadata
                ))
                db.commit()
        except Exception:
            logger.exception(f"Failed to create audit log: {action} {resource_type} {resource_id}")


def request_info(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """Client IP and user agent of a request."""
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = None
    if forwarded:
        ip_address = forwarded.split(",")[0].strip() or None
    if not ip_address:
        ip_address = request.headers.get("x-real-ip") or (
            request.client.host if request.client else None
        )
    return ip_address, request.headers.get("user-agent")


def list_audit_logs(db: Session, organization_id: str, limit: int = 100) -> List[models.AuditLog]:
    """Get the organization's most recent audit entries."""
    return db.query(models.AuditLog).filter(
        models.AuditLog.organization_id == organization_id
    ).order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc()).limit(limit).all()
