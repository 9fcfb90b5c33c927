"""
Soft-delete lifecycle for managed entities.

One ``LifecycleController`` wraps one entity store and provides:
- visibility filtering (active only, or active plus deleted)
- delete / restore with redundant calls treated as no-ops
- confirmation gating for delete and restore
- admin gating of every mutation, checked before the store is touched

Example:
    >>> controller = LifecycleController(store, authorization)
    >>> pending = await controller.request_delete(item_id)
    >>> await controller.confirm(pending)
    >>> items = await controller.list(include_deleted=True)
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .auth import AuthorizationProvider
from .errors import EntityDeleted
from .models import EntityKind, ManagedEntity
from .store import EntityStore

logger = logging.getLogger(__name__)

DELETE = "delete"
RESTORE = "restore"


@dataclass(frozen=True)
class PendingAction:
    """A delete or restore waiting for the user's confirmation"""
    action: str
    entity_id: str
    label: str

    @property
    def prompt(self) -> str:
        if self.action == DELETE:
            return f"Delete {self.label}? This is a logical deletion and can be undone."
        return f"Restore {self.label}?"


class LifecycleController:
    """Controller for one entity kind under soft-delete management"""

    def __init__(self, store: EntityStore, authorization: AuthorizationProvider):
        self._store = store
        self._authorization = authorization

    @property
    def kind(self) -> EntityKind:
        return self._store.kind

    @property
    def can_mutate(self) -> Optional[bool]:
        """Cached admin state; None until first evaluated"""
        return self._authorization.known

    async def authorization_state(self) -> bool:
        """Resolve whether mutations are allowed for the current principal"""
        return await self._authorization.is_admin()

    async def require_admin(self, action: str = "") -> None:
        await self._authorization.require_admin(action)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(self,
                   include_deleted: bool = False,
                   search: Optional[str] = None,
                   filters: Optional[Dict[str, Any]] = None) -> List[ManagedEntity]:
        """
        List records of this kind

        Args:
            include_deleted: Also return soft-deleted records
            search: Case-insensitive substring matched against the kind's search fields
            filters: Exact field matches, e.g. {"component": "Matemática"}

        Returns:
            Records in store order
        """
        records = await self._store.list(include_deleted=include_deleted)

        if search and search.strip():
            term = search.strip().lower()
            records = [
                r for r in records
                if any(term in str(r.get(f) or "").lower() for f in self.kind.search_fields)
            ]

        for name, value in (filters or {}).items():
            records = [r for r in records if r.get(name) == value]

        return records

    async def distinct_values(self, field_name: str, include_deleted: bool = False) -> List[str]:
        """Sorted non-empty values of a field, for filter dropdowns"""
        records = await self._store.list(include_deleted=include_deleted)
        return sorted({r.get(field_name) for r in records if r.get(field_name)})

    async def get(self, entity_id: str) -> ManagedEntity:
        return await self._store.get(entity_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, fields: Dict[str, Any]) -> ManagedEntity:
        await self._authorization.require_admin(f"create {self.kind.name}")
        cleaned = self.kind.clean(fields)
        entity = await self._store.create(cleaned)
        logger.info("%s created: %s", self.kind.name, entity.id)
        return entity

    async def update(self, entity_id: str, fields: Dict[str, Any]) -> ManagedEntity:
        await self._authorization.require_admin(f"update {self.kind.name}")
        cleaned = self.kind.clean(fields, partial=True)
        current = await self._store.get(entity_id)
        if current.deleted:
            raise EntityDeleted(self.kind.name, entity_id)
        entity = await self._store.update(entity_id, cleaned)
        logger.info("%s updated: %s", self.kind.name, entity.id)
        return entity

    async def delete(self, entity_id: str) -> ManagedEntity:
        """Soft delete; deleting a deleted record is a no-op"""
        await self._authorization.require_admin(f"delete {self.kind.name}")
        current = await self._store.get(entity_id)
        if current.deleted:
            logger.info("%s %s already deleted", self.kind.name, entity_id)
            return current
        entity = await self._store.soft_delete(entity_id)
        logger.info("%s deleted: %s", self.kind.name, entity_id)
        return entity

    async def restore(self, entity_id: str) -> ManagedEntity:
        """Undo a soft delete; restoring an active record is a no-op"""
        await self._authorization.require_admin(f"restore {self.kind.name}")
        current = await self._store.get(entity_id)
        if not current.deleted:
            logger.info("%s %s already active", self.kind.name, entity_id)
            return current
        entity = await self._store.restore(entity_id)
        logger.info("%s restored: %s", self.kind.name, entity_id)
        return entity

    # ------------------------------------------------------------------
    # Confirmation gating
    # ------------------------------------------------------------------

    async def request_delete(self, entity_id: str) -> PendingAction:
        return await self._request(DELETE, entity_id)

    async def request_restore(self, entity_id: str) -> PendingAction:
        return await self._request(RESTORE, entity_id)

    async def confirm(self, pending: PendingAction) -> ManagedEntity:
        """Dispatch a confirmed action"""
        if pending.action == DELETE:
            return await self.delete(pending.entity_id)
        if pending.action == RESTORE:
            return await self.restore(pending.entity_id)
        raise ValueError(f"Unknown lifecycle action: {pending.action}")

    async def _request(self, action: str, entity_id: str) -> PendingAction:
        await self._authorization.require_admin(f"{action} {self.kind.name}")
        entity = await self._store.get(entity_id)
        label = str(entity.get(self.kind.label_field) or entity_id)
        return PendingAction(action=action, entity_id=entity_id, label=label)
