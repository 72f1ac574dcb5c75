"""
Tiered recovery for the browser session.

A failure is mapped to a FailureCategory, the category to a RecoveryLevel,
and the level to a remediation:

    RELOAD       (1) reload the current page
    NEW_PAGE     (2) replace the page on the same browser
    FULL_RESTART (3) close everything, wait, set the session up again

A remediation below FULL_RESTART that itself fails escalates to
FULL_RESTART. A failed FULL_RESTART is fatal (RecoveryError).
"""

import asyncio
import logging
from enum import IntEnum
from typing import Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from libs.core.exceptions import FailureCategory, PerplexityError, RecoveryError

logger = logging.getLogger(__name__)


class RecoveryLevel(IntEnum):
    RELOAD = 1
    NEW_PAGE = 2
    FULL_RESTART = 3


CATEGORY_LEVELS = {
    FailureCategory.FRAME_DETACHED: RecoveryLevel.NEW_PAGE,
    FailureCategory.NAVIGATION: RecoveryLevel.RELOAD,
    FailureCategory.TIMEOUT: RecoveryLevel.RELOAD,
    FailureCategory.SESSION_INIT: RecoveryLevel.FULL_RESTART,
    FailureCategory.SELECTOR_MISSING: RecoveryLevel.FULL_RESTART,
    FailureCategory.CHALLENGE: RecoveryLevel.FULL_RESTART,
    FailureCategory.FALLBACK: RecoveryLevel.FULL_RESTART,
    FailureCategory.UNKNOWN: RecoveryLevel.FULL_RESTART,
}


def categorize(error: Optional[BaseException]) -> Optional[FailureCategory]:
    """
    Condition code for an error.

    Our own errors carry their category. Foreign errors (Playwright's) only
    have a message, so they are triaged by message at this boundary.
    """
    if error is None:
        return None
    if isinstance(error, PerplexityError):
        return error.category
    if isinstance(error, PlaywrightTimeoutError):
        return FailureCategory.TIMEOUT

    message = str(error).lower()
    if "frame" in message or "detached" in message:
        return FailureCategory.FRAME_DETACHED
    if "timeout" in message or "navigation" in message:
        return FailureCategory.TIMEOUT
    return FailureCategory.UNKNOWN


def classify(error: Optional[BaseException] = None) -> RecoveryLevel:
    """Pure mapping from error to remediation level; no error means FULL_RESTART."""
    category = categorize(error)
    if category is None:
        return RecoveryLevel.FULL_RESTART
    return CATEGORY_LEVELS.get(category, RecoveryLevel.FULL_RESTART)


class RecoveryManager:
    """Runs remediation against a BrowserSessionManager."""

    def __init__(self, session_manager, recovery_wait: float = 15.0):
        self.session_manager = session_manager
        self.recovery_wait = recovery_wait

    async def recover(self, error: Optional[BaseException] = None) -> RecoveryLevel:
        """
        Remediate and return the level that succeeded.

        Raises:
            RecoveryError: FULL_RESTART itself failed
        """
        level = classify(error)
        session = self.session_manager.session
        session.operation_count += 1
        op_id = session.operation_count

        logger.info(f"[Recovery op={op_id}] Starting recovery: level={level.name} cause={error}")

        try:
            if level == RecoveryLevel.RELOAD:
                logger.info(f"[Recovery op={op_id}] Attempting page refresh")
                await self.session_manager.reload_page()
            elif level == RecoveryLevel.NEW_PAGE:
                logger.info(f"[Recovery op={op_id}] Creating new page instance")
                await self.session_manager.replace_page()
            else:
                logger.info(f"[Recovery op={op_id}] Performing full browser restart")
                await self._full_restart()

            logger.info(f"[Recovery op={op_id}] Recovery completed ({level.name})")
            return level

        except Exception as e:
            logger.error(f"[Recovery op={op_id}] Recovery failed: {e}")

            if level < RecoveryLevel.FULL_RESTART:
                logger.info(f"[Recovery op={op_id}] Attempting higher level recovery")
                return await self.recover(
                    RecoveryError("Fallback recovery", category=FailureCategory.FALLBACK)
                )
            if isinstance(e, RecoveryError):
                raise
            raise RecoveryError(
                f"Full browser restart failed: {e}",
                context={"op_id": op_id, "cause": type(e).__name__},
            ) from e

    async def _full_restart(self):
        await self.session_manager.close_browser()
        logger.info(f"[Recovery] Waiting {self.recovery_wait}s before relaunch")
        await asyncio.sleep(self.recovery_wait)
        await self.session_manager.setup()
