"""Entity store interface and an in-memory implementation"""
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .errors import DuplicateEntity, NotFound
from .models import EntityKind, ManagedEntity

logger = logging.getLogger(__name__)


class EntityStore(ABC):
    """
    Persistence boundary for one entity kind.

    Stores assign ids, keep soft-deleted rows addressable, and enforce
    uniqueness of ``kind.unique`` fields among active rows. Field validation
    and authorization happen upstream in the lifecycle controller.
    """

    def __init__(self, kind: EntityKind):
        self.kind = kind

    @abstractmethod
    async def list(self, include_deleted: bool = False) -> List[ManagedEntity]:
        """Records in creation order; active only unless include_deleted"""

    @abstractmethod
    async def get(self, entity_id: str) -> ManagedEntity:
        """Fetch one record, deleted or not. Raises NotFound."""

    @abstractmethod
    async def create(self, fields: Dict[str, Any]) -> ManagedEntity:
        """Insert a new active record. Raises DuplicateEntity."""

    @abstractmethod
    async def update(self, entity_id: str, fields: Dict[str, Any]) -> ManagedEntity:
        """Apply field changes. Raises NotFound, DuplicateEntity."""

    @abstractmethod
    async def soft_delete(self, entity_id: str) -> ManagedEntity:
        """Set deleted=True. Raises NotFound."""

    @abstractmethod
    async def restore(self, entity_id: str) -> ManagedEntity:
        """Set deleted=False. Raises NotFound, DuplicateEntity."""


class InMemoryEntityStore(EntityStore):
    """Dict-backed store; insertion order is the listing order"""

    def __init__(self, kind: EntityKind, records: Optional[List[ManagedEntity]] = None):
        super().__init__(kind)
        self._records: Dict[str, ManagedEntity] = {}
        for record in records or []:
            self._records[record.id] = record

    async def list(self, include_deleted: bool = False) -> List[ManagedEntity]:
        return [
            copy.deepcopy(r) for r in self._records.values()
            if include_deleted or not r.deleted
        ]

    async def get(self, entity_id: str) -> ManagedEntity:
        return copy.deepcopy(self._get(entity_id))

    async def create(self, fields: Dict[str, Any]) -> ManagedEntity:
        self._check_unique(fields)
        record = ManagedEntity(id=str(uuid.uuid4()), kind=self.kind.name, fields=dict(fields))
        self._records[record.id] = record
        return copy.deepcopy(record)

    async def update(self, entity_id: str, fields: Dict[str, Any]) -> ManagedEntity:
        record = self._get(entity_id)
        self._check_unique(fields, exclude_id=entity_id)
        record.fields.update(fields)
        return copy.deepcopy(record)

    async def soft_delete(self, entity_id: str) -> ManagedEntity:
        record = self._get(entity_id)
        record.deleted = True
        return copy.deepcopy(record)

    async def restore(self, entity_id: str) -> ManagedEntity:
        record = self._get(entity_id)
        if record.deleted:
            self._check_unique(record.fields, exclude_id=entity_id)
        record.deleted = False
        return copy.deepcopy(record)

    def _get(self, entity_id: str) -> ManagedEntity:
        try:
            return self._records[entity_id]
        except KeyError:
            raise NotFound(self.kind.name, entity_id) from None

    def _check_unique(self, fields: Dict[str, Any], exclude_id: Optional[str] = None) -> None:
        for name in self.kind.unique:
            if name not in fields:
                continue
            value = fields[name]
            for other in self._records.values():
                if other.id == exclude_id or other.deleted:
                    continue
                if other.fields.get(name) == value:
                    raise DuplicateEntity(self.kind.name, name, value)
