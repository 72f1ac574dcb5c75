"""
Navigation to the Perplexity UI.

Loads the target with a strictly sequential fallback over Playwright wait
conditions, lets client-side script settle, checks the page did not get
redirected off-domain, and confirms a usable query input exists.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from apps.services.tool_server.page_diagnostics import (
    NAVIGATION_FAILED_SCREENSHOT,
    NO_SEARCH_INPUT_SCREENSHOT,
    capture_screenshot,
)
from apps.services.tool_server.selector_discovery import SelectorDiscovery
from libs.core.exceptions import NavigationError

logger = logging.getLogger(__name__)

WAIT_UNTIL_STRATEGIES = ("networkidle", "domcontentloaded", "load")


def is_target_host(url: str, domain: str) -> bool:
    """True if url's host is domain or one of its subdomains."""
    host = (urlparse(url).hostname or "").lower()
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


class PerplexityNavigator:
    """Drives a page to the interactive Perplexity home page."""

    def __init__(
        self,
        discovery: SelectorDiscovery,
        target_url: str = "https://www.perplexity.ai/",
        target_domain: str = "perplexity.ai",
        navigation_timeout: float = 45.0,
        settle_seconds: float = 7.0,
        screenshot_dir: Path = Path("."),
    ):
        self.discovery = discovery
        self.target_url = target_url
        self.target_domain = target_domain
        self.navigation_timeout = navigation_timeout
        self.settle_seconds = settle_seconds
        self.screenshot_dir = screenshot_dir

    async def navigate(self, page) -> str:
        """
        Load the target and return the discovered query-input selector.

        Raises:
            NavigationError: every strategy failed, the page landed off-domain,
                or no usable input was found
        """
        try:
            logger.info(f"[Navigator] Navigating to {self.target_url}")
            strategy = await self._goto_with_fallback(page)
            logger.info(f"[Navigator] Navigation successful with wait_until={strategy}")

            logger.info(f"[Navigator] Waiting {self.settle_seconds}s for page to settle...")
            await asyncio.sleep(self.settle_seconds)

            url = page.url
            title = await self._safe_title(page)
            logger.info(f"[Navigator] Page loaded: {url} ({title})")

            if not is_target_host(url, self.target_domain):
                raise NavigationError(f"Navigation redirected to unexpected URL: {url}", url=url)

            selector = await self.discovery.find_query_input(page)
            if not selector:
                logger.error("[Navigator] Search input not found, taking screenshot for debugging")
                await capture_screenshot(page, NO_SEARCH_INPUT_SCREENSHOT, self.screenshot_dir)
                raise NavigationError("Search input not found after navigation", url=url)

            logger.info("[Navigator] Navigation to Perplexity completed successfully")
            return selector

        except Exception as e:
            logger.error(f"[Navigator] Navigation failed: {e}")
            await capture_screenshot(page, NAVIGATION_FAILED_SCREENSHOT, self.screenshot_dir)
            if isinstance(e, NavigationError):
                raise
            raise NavigationError(f"Navigation failed: {e}", url=self.target_url) from e

    async def _goto_with_fallback(self, page) -> str:
        last_error: Optional[Exception] = None
        for wait_until in WAIT_UNTIL_STRATEGIES:
            try:
                logger.info(f"[Navigator] Attempting navigation with wait_until={wait_until}")
                await page.goto(
                    self.target_url,
                    wait_until=wait_until,
                    timeout=int(self.navigation_timeout * 1000),
                )
                return wait_until
            except Exception as e:
                last_error = e
                logger.warning(f"[Navigator] Navigation with wait_until={wait_until} failed: {e}")

        raise NavigationError(
            f"All navigation strategies failed: {last_error}",
            url=self.target_url,
            context={"strategies": list(WAIT_UNTIL_STRATEGIES)},
        )

    @staticmethod
    async def _safe_title(page) -> str:
        try:
            return await page.title()
        except Exception:
            return ""
