from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from strikeplan.audit import AuditLog, InMemoryAuditLog
from strikeplan.auth import Authorizer, ScopedAuthorizer
from strikeplan.config import Settings, default_settings
from strikeplan.database import InMemoryKeyValueDatabase
from strikeplan.models import Actor
from strikeplan.store import Database

NowFn = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Planner:
    """Everything a core operation needs: store, collaborators and a clock."""

    db: Database
    authorizer: Authorizer
    audit: AuditLog
    settings: Settings = field(default_factory=default_settings)
    now_fn: NowFn = utc_now

    def now(self) -> datetime:
        return self.now_fn()


def build_planner(
    *,
    actor: Actor | None = None,
    settings: Settings | None = None,
    now_fn: NowFn = utc_now,
) -> Planner:
    db: Database = InMemoryKeyValueDatabase()
    return Planner(
        db=db,
        authorizer=ScopedAuthorizer(db, actor),
        audit=InMemoryAuditLog(now_fn=lambda: now_fn()),
        settings=settings or default_settings(),
        now_fn=now_fn,
    )
