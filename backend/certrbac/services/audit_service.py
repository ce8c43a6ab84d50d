"""
Audit Service — Manages the immutable, hash-chained audit trail.

Recording is isolated from the caller: entries are written through their own
session and any failure is logged and swallowed, so an audit problem never
fails the operation being audited.
"""
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy import or_

from certrbac.database import SessionLocal
from certrbac.models.audit import AuditLog, AuditAction, AuditSeverity
from certrbac.utils.hashing import generate_chain_hash
from certrbac.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

# One writer at a time between reading the chain head and committing the new link
_chain_lock = threading.Lock()


@dataclass(frozen=True)
class RequestMeta:
    """Request context copied onto audit entries."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    method: Optional[str] = None
    path: Optional[str] = None


def _json_safe(value):
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def _chain_payload(entry: AuditLog) -> dict:
    """Fields covered by the chain hash; must be reproducible from stored columns."""
    return {
        "action": entry.action,
        "severity": entry.severity,
        "performed_by": entry.performed_by,
        "performed_by_email": entry.performed_by_email,
        "performed_by_role": entry.performed_by_role,
        "target_resource": entry.target_resource,
        "target_id": entry.target_id,
        "success": entry.success,
        "status_code": entry.status_code,
        "details": entry.details or {},
        "changes": entry.changes,
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
    }


class AuditService:
    """Creates tamper-evident audit log entries with hash chaining."""

    # Separate from the request session so a failed write cannot roll back the caller
    session_factory = SessionLocal

    @classmethod
    def log(
        cls,
        action: AuditAction,
        severity: AuditSeverity = AuditSeverity.INFO,
        actor=None,
        actor_email: Optional[str] = None,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        resource_name: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
        success: bool = True,
        status_code: Optional[int] = None,
        error_message: Optional[str] = None,
        details: Optional[Dict] = None,
        changes: Optional[Dict] = None,
    ) -> Optional[AuditLog]:
        """Create an audit log entry with hash chaining.

        Args:
            action: What happened (AuditAction).
            severity: info | warning | critical | error.
            actor: User performing the action; id, email and role are copied now.
            actor_email: E-mail to record when there is no resolved actor.
            resource: Target resource type (certificate, user).
            resource_id: Target identifier.
            resource_name: Human-readable target label.
            meta: Request context (ip, user agent, method, path).
            success: Outcome flag.
            status_code: HTTP-equivalent status of the outcome.
            error_message: Failure description, if any.
            details: Free-form details.
            changes: {"before": ..., "after": ...} for privileged mutations.

        Returns:
            The created AuditLog entry, or None if recording failed.
        """
        meta = meta or RequestMeta()
        try:
            entry = AuditLog(
                action=getattr(action, "value", action),
                severity=getattr(severity, "value", severity),
                performed_by=str(actor.id) if actor is not None else None,
                performed_by_email=actor.email if actor is not None else actor_email,
                performed_by_role=actor.role if actor is not None else None,
                target_resource=resource,
                target_id=str(resource_id) if resource_id is not None else None,
                target_name=resource_name,
                ip_address=meta.ip_address,
                user_agent=(meta.user_agent or "")[:256] or None,
                request_method=meta.method,
                request_path=meta.path,
                success=success,
                status_code=status_code,
                error_message=error_message,
                details=_json_safe(details) or {},
                changes=_json_safe(changes),
                timestamp=utcnow(),
            )
        except Exception:
            logger.exception("Audit log failed while building %s entry", action)
            return None

        with _chain_lock:
            return cls._append(entry)

    @classmethod
    def _append(cls, entry: AuditLog) -> Optional[AuditLog]:
        db = None
        try:
            db = cls.session_factory()
            last_entry = db.query(AuditLog).order_by(AuditLog.id.desc()).first()
            previous_hash = last_entry.payload_hash if last_entry else ""

            entry.previous_hash = previous_hash
            entry.payload_hash = generate_chain_hash(_chain_payload(entry), previous_hash)

            db.add(entry)
            db.commit()
            db.refresh(entry)
            db.expunge(entry)
            return entry
        except Exception:
            logger.exception("Audit log failed for %s", entry.action)
            if db is not None:
                try:
                    db.rollback()
                except Exception:
                    logger.debug("Audit rollback failed", exc_info=True)
            return None
        finally:
            if db is not None:
                try:
                    db.close()
                except Exception:
                    logger.debug("Audit session close failed", exc_info=True)

    @staticmethod
    def search(
        db,
        action: Optional[str] = None,
        severity: Optional[str] = None,
        user_id: Optional[str] = None,
        resource: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[AuditLog], int]:
        """Filtered, newest-first page of audit entries and the total match count."""
        query = db.query(AuditLog)
        if action:
            query = query.filter(AuditLog.action == action)
        if severity:
            query = query.filter(AuditLog.severity == severity)
        if user_id:
            query = query.filter(AuditLog.performed_by == user_id)
        if resource:
            query = query.filter(AuditLog.target_resource == resource)
        if start:
            query = query.filter(AuditLog.timestamp >= start)
        if end:
            query = query.filter(AuditLog.timestamp <= end)

        total = query.count()
        logs = (
            query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return logs, total

    @staticmethod
    def security_events(db, page: int = 1, limit: int = 20) -> tuple[list[AuditLog], int]:
        """Warnings, critical events, failures and security.* actions."""
        query = db.query(AuditLog).filter(
            or_(
                AuditLog.severity.in_([AuditSeverity.WARNING.value, AuditSeverity.CRITICAL.value]),
                AuditLog.success.is_(False),
                AuditLog.action.like("security.%"),
            )
        )
        total = query.count()
        logs = (
            query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return logs, total

    @staticmethod
    def verify_chain(db) -> dict:
        """Verify the integrity of the audit chain.

        Returns:
            dict with 'valid' (bool), 'total_entries', and 'broken_at' (if invalid).
        """
        entries = db.query(AuditLog).order_by(AuditLog.id.asc()).all()

        if not entries:
            return {"valid": True, "total_entries": 0, "broken_at": None}

        for i, entry in enumerate(entries):
            expected_prev = entries[i - 1].payload_hash if i > 0 else ""
            expected_hash = generate_chain_hash(_chain_payload(entry), entry.previous_hash or "")
            if entry.previous_hash != expected_prev or entry.payload_hash != expected_hash:
                return {
                    "valid": False,
                    "total_entries": len(entries),
                    "broken_at": entry.id,
                    "message": f"Chain broken at entry {entry.id} ({entry.action})",
                }

        return {"valid": True, "total_entries": len(entries), "broken_at": None}
