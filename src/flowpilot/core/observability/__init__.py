"""
Observability utilities for flowpilot.

Provides audit logging for engine events (mutations, retries, discarded
fetches). Regular diagnostics go through ``logging.getLogger(__name__)`` in
each module.

Example:
    from flowpilot.core.observability import audit_log

    audit_log("mutation_confirmed", kind="update", collection_id=cid, item_id=iid)
"""

from flowpilot.core.observability.audit import (
    AuditEvent,
    AuditEventType,
    AuditLogger,
    audit_log,
    get_audit_logger,
)

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
    "audit_log",
    "get_audit_logger",
]
