"""
Best-effort diagnostic screenshots.

A failed capture is an advisory outcome: it is logged and returned, never
raised, so it cannot mask the failure that triggered it.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

NAVIGATION_FAILED_SCREENSHOT = "debug_navigation_failed.png"
NO_SEARCH_INPUT_SCREENSHOT = "debug_no_search_input.png"
SEARCH_NOT_FOUND_SCREENSHOT = "debug_search_not_found.png"


@dataclass
class ScreenshotOutcome:
    """Result of an advisory screenshot capture."""
    captured: bool
    path: Optional[Path] = None
    error: Optional[str] = None


async def capture_screenshot(page, filename: str, directory: Path = Path(".")) -> ScreenshotOutcome:
    """Write a full-page screenshot to directory/filename, swallowing failures."""
    if page is None:
        return ScreenshotOutcome(captured=False, error="no page")

    path = Path(directory) / filename
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        await page.screenshot(path=str(path), full_page=True)
        logger.info(f"[Diagnostics] Screenshot saved: {path}")
        return ScreenshotOutcome(captured=True, path=path)
    except Exception as e:
        logger.error(f"[Diagnostics] Failed to capture screenshot {filename}: {e}")
        return ScreenshotOutcome(captured=False, path=path, error=str(e))
