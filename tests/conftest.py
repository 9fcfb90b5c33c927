"""Pytest configuration and shared fixtures."""
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from curriculum_admin.auth import AuthorizationProvider
from curriculum_admin.errors import ValidationError
from curriculum_admin.lifecycle import LifecycleController
from curriculum_admin.models import BNCC_ITEM, CandidateRecord, Classified, EntityKind, ManagedEntity
from curriculum_admin.review import ReviewSession
from curriculum_admin.store import InMemoryEntityStore


class RecordingStore(InMemoryEntityStore):
    """In-memory store that records every call and can fail the n-th create."""

    def __init__(self, kind: EntityKind, fail_on_create: Optional[int] = None,
                 error: Optional[Exception] = None):
        super().__init__(kind)
        self.calls: List[str] = []
        self.created_fields: List[Dict[str, Any]] = []
        self.fail_on_create = fail_on_create
        self.error = error or ValidationError("store rejected the record")

    async def list(self, include_deleted: bool = False) -> List[ManagedEntity]:
        self.calls.append("list")
        return await super().list(include_deleted)

    async def get(self, entity_id: str) -> ManagedEntity:
        self.calls.append("get")
        return await super().get(entity_id)

    async def create(self, fields: Dict[str, Any]) -> ManagedEntity:
        self.calls.append("create")
        self.created_fields.append(dict(fields))
        if self.fail_on_create is not None and len(self.created_fields) == self.fail_on_create:
            raise self.error
        return await super().create(fields)

    async def update(self, entity_id: str, fields: Dict[str, Any]) -> ManagedEntity:
        self.calls.append("update")
        return await super().update(entity_id, fields)

    async def soft_delete(self, entity_id: str) -> ManagedEntity:
        self.calls.append("soft_delete")
        return await super().soft_delete(entity_id)

    async def restore(self, entity_id: str) -> ManagedEntity:
        self.calls.append("restore")
        return await super().restore(entity_id)


def make_candidates(count: int) -> List[CandidateRecord]:
    return [
        CandidateRecord(
            code=f"EF0{i + 1}MA0{i + 1}",
            component="Matemática",
            description=f"Habilidade {i}",
            grade=f"{i + 1}º Ano",
            thematic_unit="Números",
        )
        for i in range(count)
    ]


@pytest.fixture
def admin():
    return AuthorizationProvider.fixed(True)


@pytest.fixture
def non_admin():
    return AuthorizationProvider.fixed(False)


@pytest.fixture
def bncc_store():
    return RecordingStore(BNCC_ITEM)


@pytest.fixture
def bncc_controller(bncc_store, admin):
    return LifecycleController(bncc_store, admin)


@pytest.fixture
def review_session(bncc_controller):
    return ReviewSession(bncc_controller)


@pytest.fixture
def mock_orchestrator():
    """Orchestrator returning five in-domain candidates."""
    orchestrator = MagicMock()
    orchestrator.extract = AsyncMock(
        return_value=Classified(is_in_domain=True, candidates=tuple(make_candidates(5)))
    )
    return orchestrator
