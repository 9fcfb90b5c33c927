"""Wires stores, authorization, lifecycle controllers and the review session together"""
import logging
from typing import Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncEngine

from .auth import AuthorizationProvider, rule_admin_check
from .config import ADMIN_RULE_NAME, CONSOLE_RULE_NAME, DATABASE_URL
from .errors import ValidationError
from .extractor import ExtractionOrchestrator
from .lifecycle import LifecycleController
from .models import BNCC_ITEM, USER_RULE, Document, ExtractionOutcome
from .review import ReviewSession
from .sql_store import build_sql_stores, create_engine_and_tables
from .store import EntityStore

logger = logging.getLogger(__name__)


class AdminConsole:
    """One reviewer's session over the managed entity stores"""

    def __init__(self,
                 stores: Dict[str, EntityStore],
                 authorization: AuthorizationProvider,
                 orchestrator: Optional[ExtractionOrchestrator] = None):
        self.stores = stores
        self.authorization = authorization
        self.controllers = {
            name: LifecycleController(store, authorization) for name, store in stores.items()
        }
        self.review = ReviewSession(self.controllers[BNCC_ITEM.name])
        self._orchestrator = orchestrator

    @property
    def orchestrator(self) -> ExtractionOrchestrator:
        # Built on first use so lifecycle-only sessions need no LLM credentials
        if self._orchestrator is None:
            self._orchestrator = ExtractionOrchestrator()
        return self._orchestrator

    def controller(self, kind: str) -> LifecycleController:
        try:
            return self.controllers[kind]
        except KeyError:
            raise ValidationError(
                f"Unknown entity kind '{kind}'",
                {"kind": kind, "known": sorted(self.controllers)},
            ) from None

    async def extract(self, document: Document) -> ExtractionOutcome:
        return await self.review.run_extraction(self.orchestrator, document)


async def open_console(database_url: str = DATABASE_URL,
                       rule_name: str = CONSOLE_RULE_NAME,
                       orchestrator: Optional[ExtractionOrchestrator] = None) -> Tuple[AdminConsole, AsyncEngine]:
    """Open a console backed by the SQL store; caller disposes the engine"""
    engine, sessions = await create_engine_and_tables(database_url)
    stores = build_sql_stores(sessions)
    authorization = AuthorizationProvider(rule_admin_check(stores[USER_RULE.name], rule_name))
    return AdminConsole(stores, authorization, orchestrator), engine


async def seed_admin_rule(stores: Dict[str, EntityStore]) -> bool:
    """Create the administrator rule if no active one exists. Returns True if created."""
    rule_store = stores[USER_RULE.name]
    rules = await rule_store.list(include_deleted=False)
    if any(rule.get("rule_name") == ADMIN_RULE_NAME for rule in rules):
        return False
    fields = USER_RULE.clean({"rule_name": ADMIN_RULE_NAME, "description": "Full access to the admin console"})
    await rule_store.create(fields)
    logger.info("Seeded %s rule", ADMIN_RULE_NAME)
    return True
