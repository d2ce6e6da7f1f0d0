import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from strikeplan.models import AuditRecord

logger = logging.getLogger(__name__)


class AuditLog(Protocol):
    def record(
        self,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: dict[str, Any] | None = None,
    ) -> None: ...


class InMemoryAuditLog:
    """Append-only audit trail kept in memory; every record is also logged."""

    def __init__(self, now_fn: Callable[[], datetime] | None = None) -> None:
        self.records: list[AuditRecord] = []
        self._now_fn = now_fn or (lambda: datetime.now(UTC))

    def record(
        self,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        entry = AuditRecord(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            changes=dict(details or {}),
            timestamp=self._now_fn(),
        )
        self.records.append(entry)
        logger.info(
            "audit %s %s %s by %s", action, resource_type, resource_id, actor_id
        )

    def for_resource(self, resource_type: str) -> list[AuditRecord]:
        return [r for r in self.records if r.resource_type == resource_type]
