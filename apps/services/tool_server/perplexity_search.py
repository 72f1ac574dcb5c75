"""
Perplexity search & answer extraction pipeline.

One call = one query typed into the live Perplexity page:

1. Ensure the browser session exists
2. Per-session cooldown between submissions
3. Up to max_retries attempts of:
   challenge check -> re-validate input -> type + Enter ->
   wait for a new answer container -> wait for generation to stop ->
   extract -> normalize
   Any failing step hands the error to RecoveryManager and tries again.

The whole call runs under the session manager's lock, so concurrent callers
are served one at a time and idle teardown cannot run mid-search.

A reused page still shows the answers of earlier queries. Each attempt counts
the answer containers before submitting and only reads containers added after
that count.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from apps.services.tool_server.browser_session_manager import BrowserSession, BrowserSessionManager
from apps.services.tool_server.challenge_detector import has_challenge
from apps.services.tool_server.recovery_manager import RecoveryManager
from apps.services.tool_server.selector_discovery import SelectorDiscovery
from libs.core.config import Settings
from libs.core.exceptions import (
    ChallengeDetectedError,
    FailureCategory,
    GenerationTimeoutError,
    SearchFailedError,
    SelectorNotFoundError,
    SessionInitError,
)

logger = logging.getLogger(__name__)

# Answer containers, highest priority first. Extraction uses the first
# selector with any match and never merges matches across selectors.
ANSWER_SELECTORS = [
    ".prose",
    '[class*="prose"]',
    '[data-testid="answer"]',
    ".markdown-content",
    '[class*="answer"]',
    "main article",
]

# Visible while the answer is still streaming
GENERATION_INDICATORS = [
    'button[aria-label*="Stop"]',
    '[class*="animate-pulse"]',
]

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_EXCESS_SPACES = re.compile(r"[^\S\n]{2,}")


def normalize_answer(text: str) -> str:
    """Trim, cap blank-line runs at one blank line, squeeze horizontal whitespace."""
    text = text.replace("\r\n", "\n").replace("\r", "\n").strip()
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return _EXCESS_SPACES.sub(" ", text)


@dataclass
class SearchAttempt:
    """Transient per-attempt state; discarded when search() returns."""
    query: str
    retry: int
    selector: Optional[str] = None


class PerplexitySearch:
    """Top-level search operation exposed to the tool layer."""

    def __init__(
        self,
        session_manager: BrowserSessionManager,
        recovery: RecoveryManager,
        settings: Settings,
        discovery: Optional[SelectorDiscovery] = None,
        challenge_check: Callable[..., Awaitable[bool]] = has_challenge,
    ):
        self.session_manager = session_manager
        self.recovery = recovery
        self.settings = settings
        self.discovery = discovery or SelectorDiscovery(
            candidate_timeout=settings.search.candidate_timeout_seconds,
            screenshot_dir=settings.browser.screenshot_dir,
        )
        self.challenge_check = challenge_check

    async def search(self, query: str) -> str:
        """
        Submit query and return the normalized answer text.

        Raises:
            SearchFailedError: session could not start or retries exhausted
            RecoveryError: a full browser restart failed
        """
        self.session_manager.touch()

        async with self.session_manager.lock:
            try:
                session = await self.session_manager.ensure_session()
            except SessionInitError as e:
                raise SearchFailedError(f"Could not start browser session: {e.message}") from e

            await self._apply_cooldown(session)

            max_retries = self.settings.search.max_retries
            for retry in range(max_retries):
                attempt = SearchAttempt(query=query, retry=retry)
                try:
                    answer = await self._run_attempt(session, attempt)
                    logger.info(
                        f"[PerplexitySearch] Answer extracted on attempt {retry + 1} "
                        f"({len(answer)} chars, selector={attempt.selector})"
                    )
                    return answer
                except Exception as e:
                    logger.warning(f"[PerplexitySearch] Attempt {retry + 1}/{max_retries} failed: {e}")
                    await self.recovery.recover(e)

            raise SearchFailedError(
                f"Search failed after {max_retries} attempts",
                attempts=max_retries,
                context={"query": query[:100]},
            )

    async def _apply_cooldown(self, session: BrowserSession):
        loop = asyncio.get_running_loop()
        cooldown = self.settings.search.cooldown_seconds

        if session.last_search_at is not None:
            while True:
                remaining = cooldown - (loop.time() - session.last_search_at)
                if remaining <= 0:
                    break
                logger.info(f"[PerplexitySearch] Rate limiting: waiting {remaining:.2f}s")
                await asyncio.sleep(remaining)

        session.last_search_at = loop.time()

    async def _run_attempt(self, session: BrowserSession, attempt: SearchAttempt) -> str:
        page = session.page
        if page is None:
            raise SessionInitError("Browser page not available")

        if await self.challenge_check(page):
            raise ChallengeDetectedError("Anti-automation challenge detected", context={"retry": attempt.retry})

        selector = await self.discovery.find_query_input(page)
        if not selector:
            raise SelectorNotFoundError("No usable search input found")
        session.input_selector = selector
        attempt.selector = selector

        # Answers already on the page belong to earlier queries in this thread
        baseline = await self._count_answers(page)

        await self._submit(page, selector, attempt.query)
        await self._wait_for_answer(page, baseline)

        try:
            await self._wait_for_generation(page)
        except GenerationTimeoutError as e:
            logger.warning(f"[PerplexitySearch] {e.message}; extracting what is rendered")

        raw = await self._extract(page, baseline)
        return normalize_answer(raw)

    async def _submit(self, page, selector: str, query: str):
        await page.fill(selector, "", timeout=self.settings.timeouts.ms("selector"))
        await page.keyboard.type(query, delay=self.settings.browser.typing_delay_ms)
        await page.keyboard.press("Enter")
        logger.info(f"[PerplexitySearch] Query submitted ({len(query)} chars)")

    @staticmethod
    async def _count_answers(page) -> Dict[str, int]:
        return {selector: len(await page.query_selector_all(selector)) for selector in ANSWER_SELECTORS}

    async def _wait_for_answer(self, page, baseline: Dict[str, int]):
        """Wait until a container beyond the baseline exists or generation has started."""
        loop = asyncio.get_running_loop()
        budget = self.settings.timeouts.generation
        deadline = loop.time() + budget
        poll = self.settings.search.generation_poll_interval_seconds

        while True:
            counts = await self._count_answers(page)
            if any(counts[sel] > baseline.get(sel, 0) for sel in ANSWER_SELECTORS):
                return
            if await self._is_generating(page):
                return
            if loop.time() >= deadline:
                raise SelectorNotFoundError(
                    f"No new answer container after {budget}s",
                    category=FailureCategory.TIMEOUT,
                )
            await asyncio.sleep(poll)

    async def _wait_for_generation(self, page):
        loop = asyncio.get_running_loop()
        budget = self.settings.timeouts.generation
        deadline = loop.time() + budget
        poll = self.settings.search.generation_poll_interval_seconds

        while await self._is_generating(page):
            if loop.time() >= deadline:
                raise GenerationTimeoutError(f"Answer still generating after {budget}s")
            await asyncio.sleep(poll)

    @staticmethod
    async def _is_generating(page) -> bool:
        for selector in GENERATION_INDICATORS:
            element = await page.query_selector(selector)
            if element is not None and await element.is_visible():
                return True
        return False

    @staticmethod
    async def _extract(page, baseline: Optional[Dict[str, int]] = None) -> str:
        """Text of the first selector with containers past the baseline, joined by blank lines."""
        baseline = baseline or {}
        for selector in ANSWER_SELECTORS:
            elements = await page.query_selector_all(selector)
            fresh = elements[baseline.get(selector, 0):]
            if fresh:
                texts = [(await element.text_content()) or "" for element in fresh]
                return "\n\n".join(texts)

        logger.warning("[PerplexitySearch] No new answer container matched, falling back to page text")
        return await page.inner_text("body")
