"""Audit logging for engine events.

Provides structured audit records for the optimistic mutation lifecycle so
issued, confirmed, rolled back and superseded mutations can be traced after
the fact.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of audit events emitted by the engine."""

    MUTATION_ISSUED = "mutation_issued"
    MUTATION_CONFIRMED = "mutation_confirmed"
    MUTATION_ROLLED_BACK = "mutation_rolled_back"
    MUTATION_SUPERSEDED = "mutation_superseded"
    RETRY_ATTEMPT = "retry_attempt"
    FETCH_DISCARDED = "fetch_discarded"


@dataclass
class AuditEvent:
    """Structured audit event."""

    event_type: AuditEventType
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    collection_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Lift collection_id out of details when it was passed there."""
        if self.collection_id is None:
            cid = self.details.get("collection_id")
            if isinstance(cid, str):
                self.collection_id = cid

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "details": self.details,
        }
        if self.collection_id:
            result["collection_id"] = self.collection_id
        return result


class AuditLogger:
    """
    Structured audit logging for engine events.

    Audit logs are written to a separate logger for easy filtering.
    """

    def __init__(self):
        self._logger = logging.getLogger(f"{__name__}.audit")

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        self._logger.info(f"AUDIT: {event.event_type.value}", extra={"audit": event.to_dict()})

    def mutation_issued(self, kind: str, collection_id: str, operation_id: str, **details: Any) -> None:
        """Log an optimistic mutation entering the overlay."""
        self.log(
            AuditEvent(
                event_type=AuditEventType.MUTATION_ISSUED,
                collection_id=collection_id,
                details={"kind": kind, "operation_id": operation_id, **details},
            )
        )

    def mutation_rolled_back(
        self,
        kind: str,
        collection_id: str,
        operation_id: str,
        error_kind: Optional[str] = None,
        **details: Any,
    ) -> None:
        """Log an optimistic mutation removed after a terminal failure."""
        self.log(
            AuditEvent(
                event_type=AuditEventType.MUTATION_ROLLED_BACK,
                collection_id=collection_id,
                details={
                    "kind": kind,
                    "operation_id": operation_id,
                    "error_kind": error_kind,
                    **details,
                },
            )
        )


# Global audit logger
_audit = AuditLogger()


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger."""
    return _audit


def audit_log(event_type: str, **details: Any) -> None:
    """
    Convenience function for audit logging.

    Args:
        event_type: Type of event (mutation_issued, mutation_confirmed,
                    mutation_rolled_back, mutation_superseded, retry_attempt,
                    fetch_discarded)
        **details: Additional details to include in the audit log

    Raises:
        ValueError: If event_type is not an AuditEventType value
    """
    _audit.log(AuditEvent(event_type=AuditEventType(event_type), details=details))
