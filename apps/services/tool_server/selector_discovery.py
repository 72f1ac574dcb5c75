"""
Query-input discovery for the Perplexity UI.

The site ships several markup variants of its "Ask anything" box and swaps
between them without notice. Candidates are probed in priority order; the
first one that is visible, enabled and not aria-hidden wins.
"""

import logging
from pathlib import Path
from typing import Optional

from apps.services.tool_server.page_diagnostics import (
    SEARCH_NOT_FOUND_SCREENSHOT,
    capture_screenshot,
)

logger = logging.getLogger(__name__)

# Priority order matters: most specific first, bare textarea last
QUERY_INPUT_SELECTORS = [
    'textarea[placeholder*="Ask"]',
    'textarea[placeholder*="Search"]',
    "textarea.w-full",
    'textarea[rows="1"]',
    '[role="textbox"]',
    "textarea",
]


class SelectorDiscovery:
    """Finds the currently usable query input on a page."""

    def __init__(
        self,
        candidates: Optional[list[str]] = None,
        candidate_timeout: float = 5.0,
        screenshot_dir: Path = Path("."),
    ):
        self.candidates = list(candidates or QUERY_INPUT_SELECTORS)
        self.candidate_timeout = candidate_timeout
        self.screenshot_dir = screenshot_dir

    async def find_query_input(self, page) -> Optional[str]:
        """
        Return the first qualifying selector, or None after trying them all.

        A candidate qualifies when a match becomes visible within the
        per-candidate timeout and is enabled and not hidden from assistive tech.
        """
        for selector in self.candidates:
            try:
                element = await page.wait_for_selector(
                    selector,
                    state="visible",
                    timeout=int(self.candidate_timeout * 1000),
                )
                if element and await self._is_interactive(element):
                    logger.info(f"[SelectorDiscovery] Found working search input: {selector}")
                    return selector
                logger.warning(f"[SelectorDiscovery] Selector '{selector}' matched but is not interactive")
            except Exception:
                logger.warning(f"[SelectorDiscovery] Selector '{selector}' not found or not interactive")

        await capture_screenshot(page, SEARCH_NOT_FOUND_SCREENSHOT, self.screenshot_dir)
        logger.error("[SelectorDiscovery] No working search input found")
        return None

    @staticmethod
    async def _is_interactive(element) -> bool:
        if not await element.is_enabled():
            return False
        return await element.get_attribute("aria-hidden") != "true"
