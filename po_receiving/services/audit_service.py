from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from po_receiving.models import AuditLog


def log_audit(
    db: Session,
    *,
    actor: str | None,
    action: str,
    purchase_order_id: int | None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor=actor,
            action=action,
            purchase_order_id=purchase_order_id,
            meta=metadata or {},
        )
    )


def list_audit_entries(db: Session, *, purchase_order_id: int) -> list[AuditLog]:
    return db.execute(
        select(AuditLog)
        .where(AuditLog.purchase_order_id == purchase_order_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
    ).scalars().all()
