"""Session-scoped authorization state"""
import logging
from typing import Awaitable, Callable, Optional

from .config import ADMIN_RULE_NAME
from .errors import Forbidden

logger = logging.getLogger(__name__)

AdminCheck = Callable[[], Awaitable[bool]]


class AuthorizationProvider:
    """
    Answers "is the acting principal an administrator?" once per session.

    The check runs lazily on first use and the answer is cached. A check that
    raises is logged and reported as non-admin without being cached, so the
    next call asks again.
    """

    def __init__(self, check: AdminCheck):
        self._check = check
        self._is_admin: Optional[bool] = None

    @classmethod
    def fixed(cls, is_admin: bool) -> "AuthorizationProvider":
        async def check() -> bool:
            return is_admin
        return cls(check)

    @property
    def known(self) -> Optional[bool]:
        """Cached answer, or None while it has not been evaluated"""
        return self._is_admin

    async def is_admin(self) -> bool:
        if self._is_admin is None:
            try:
                self._is_admin = bool(await self._check())
            except Exception:
                logger.exception("Error checking admin status")
                return False
            logger.debug("Admin status resolved: %s", self._is_admin)
        return self._is_admin

    async def require_admin(self, action: str = "") -> None:
        """Raise Forbidden unless the principal is an administrator"""
        if not await self.is_admin():
            logger.warning("Rejected non-admin action: %s", action or "mutation")
            raise Forbidden(action)

    def reset(self) -> None:
        self._is_admin = None


def rule_admin_check(rule_store, rule_name: str) -> AdminCheck:
    """
    Build a check that grants admin when ``rule_name`` is the administrator
    rule and that rule is active and enabled in the user-rule store.
    """
    async def check() -> bool:
        if rule_name != ADMIN_RULE_NAME:
            return False
        rules = await rule_store.list(include_deleted=False)
        return any(
            rule.get("rule_name") == ADMIN_RULE_NAME and rule.get("enabled", True)
            for rule in rules
        )
    return check
