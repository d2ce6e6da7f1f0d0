from typing import Protocol

from strikeplan import store
from strikeplan.errors import ForbiddenError
from strikeplan.models import Actor, ActorRole
from strikeplan.store import Database


class Authorizer(Protocol):
    def resolve(self) -> Actor: ...

    def require_scope(self, actor: Actor, scope_id: str) -> Actor: ...


class ScopedAuthorizer:
    """
    Resolves a fixed current actor and checks scope against the
    department -> hospital -> health system chain held in the store.
    """

    def __init__(self, db: Database, actor: Actor | None = None) -> None:
        self._db = db
        self.actor = actor

    def resolve(self) -> Actor:
        if self.actor is None or not self.actor.is_active:
            raise ForbiddenError("Unauthorized: please sign in")
        return self.actor

    def require_scope(self, actor: Actor, scope_id: str) -> Actor:
        if actor.role == ActorRole.SUPER_ADMIN:
            return actor

        own_scope = {
            ActorRole.HEALTH_SYSTEM_ADMIN: actor.health_system_id,
            ActorRole.HOSPITAL_ADMIN: actor.hospital_id,
            ActorRole.DEPARTMENTAL_ADMIN: actor.department_id,
        }[actor.role]

        if own_scope is None or own_scope not in self._ancestors(scope_id):
            raise ForbiddenError("Unauthorized: access denied to this scope")
        return actor

    def _ancestors(self, scope_id: str) -> set[str]:
        chain = {scope_id}
        department = store.find_department(self._db, scope_id)
        if department is not None:
            chain.update({department.hospital_id, department.health_system_id})
            return chain
        hospital = store.find_hospital(self._db, scope_id)
        if hospital is not None:
            chain.add(hospital.health_system_id)
        return chain
