"""
Anti-automation challenge detection (CAPTCHA / verification widgets).

Read-only DOM probe. A probe error counts as "no challenge": this check must
never be the reason a search attempt fails.
"""

import logging

logger = logging.getLogger(__name__)

CHALLENGE_MARKERS = [
    '[class*="captcha"]',
    '[id*="captcha"]',
    'iframe[src*="captcha"]',
    'iframe[src*="recaptcha"]',
    'iframe[src*="turnstile"]',
    "#challenge-running",
    "#challenge-form",
]


async def has_challenge(page, markers: list[str] = CHALLENGE_MARKERS) -> bool:
    """Return True if any challenge marker is currently in the DOM."""
    if page is None:
        return False
    try:
        for marker in markers:
            if await page.query_selector(marker) is not None:
                logger.warning(f"[ChallengeDetector] Challenge marker present: {marker}")
                return True
    except Exception as e:
        logger.warning(f"[ChallengeDetector] Probe failed, assuming no challenge: {e}")
    return False
