"""
Audit logging service.
Append-only audit log with integrity hashing. Rows are added to the caller's session
so that an attendance transition and its audit entry commit together.
"""
import hashlib
import json
import uuid
from dataclasses import dataclass
from typing import Optional, Dict

from sqlalchemy.orm import Session

from ..models.models import AuditLog
from .time_rules import utc_now


@dataclass(frozen=True)
class AuditEntry:
    action: str  # CLOCK_IN|CLOCK_OUT|AUTO_CLOCK_OUT
    actor_id: Optional[uuid.UUID] = None
    actor_role: Optional[str] = None
    source: Optional[str] = None  # app|admin|system
    context: Optional[Dict] = None


def integrity_hash(canonical_data: Dict, secret: str) -> str:
    data = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(f"{canonical_json}:{secret}".encode()).hexdigest()


def add_audit_log(
    db: Session,
    entity_id,
    entry: AuditEntry,
    changes_json: Optional[Dict] = None,
    integrity_secret: Optional[str] = None,
    entity_type: str = "attendance",
) -> AuditLog:
    """
    Stage an append-only audit row in ``db`` (no commit).

    Args:
        db: Session of the surrounding transaction
        entity_id: Entity ID
        entry: Who did what, from where
        changes_json: Before/after diff
        integrity_secret: Secret mixed into the integrity hash
        entity_type: Type of entity

    Returns:
        The pending AuditLog object
    """
    timestamp_utc = utc_now()

    hashed = None
    if integrity_secret:
        hashed = integrity_hash({
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "action": entry.action,
            "actor_id": str(entry.actor_id) if entry.actor_id else None,
            "actor_role": entry.actor_role,
            "source": entry.source,
            "timestamp_utc": timestamp_utc.isoformat(),
            "changes": changes_json,
            "context": entry.context,
        }, integrity_secret)

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=entry.action,
        actor_id=entry.actor_id,
        actor_role=entry.actor_role,
        source=entry.source or "system",
        changes_json=changes_json,
        timestamp_utc=timestamp_utc,
        context=entry.context,
        integrity_hash=hashed,
    )
    db.add(audit_log)
    return audit_log


def compute_diff(before: Dict, after: Dict) -> Dict:
    """Fields whose value changed, as {field: {"before": ..., "after": ...}}."""
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in sorted(set(before) | set(after))
        if before.get(key) != after.get(key)
    }
