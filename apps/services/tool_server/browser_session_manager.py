"""
Browser session management for the Perplexity search pipeline.

Owns the single Playwright browser/page pair the server drives:
- Lazy creation on first use (launch, stealth, viewport/UA, navigation)
- Page-level primitives used by recovery (reload, replace page)
- Idle teardown after a period with no tool activity
- Idempotent teardown for idle expiry and process shutdown

Exactly one BrowserSession lives inside a manager instance; nothing is
stored at module level.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import async_playwright

from apps.services.tool_server.perplexity_navigator import PerplexityNavigator
from apps.services.tool_server.selector_discovery import SelectorDiscovery
from apps.services.tool_server.stealth_injector import apply_evasions
from libs.core.config import Settings
from libs.core.exceptions import SessionInitError

logger = logging.getLogger(__name__)


@dataclass
class BrowserSession:
    """The single live automation context."""
    playwright: Optional[Any] = None
    browser: Optional[Any] = None
    page: Optional[Any] = None
    is_initializing: bool = False
    ready: bool = False
    input_selector: Optional[str] = None
    last_search_at: Optional[float] = None  # loop.time() of last submitted query
    operation_count: int = 0

    @property
    def is_usable(self) -> bool:
        if not self.ready or self.page is None:
            return False
        try:
            return not self.page.is_closed()
        except Exception:
            return False

    def clear(self):
        """Reset every field to empty."""
        self.playwright = None
        self.browser = None
        self.page = None
        self.is_initializing = False
        self.ready = False
        self.input_selector = None
        self.last_search_at = None
        self.operation_count = 0


class IdleTimer:
    """Single replaceable call_later handle; resetting never stacks timers."""

    def __init__(self, timeout: float, on_expire: Callable[[], Awaitable[None]]):
        self.timeout = timeout
        self._on_expire = on_expire
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def reset(self):
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout, self._fire)

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self):
        self._handle = None
        self._task = asyncio.ensure_future(self._on_expire())
        self._task.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[BrowserSessionMgr] Idle teardown failed: {exc}")


class BrowserSessionManager:
    """Creates, repairs and destroys the single browser session"""

    def __init__(
        self,
        settings: Settings,
        navigator: Optional[PerplexityNavigator] = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ):
        self.settings = settings
        self.session = BrowserSession()
        self.navigator = navigator or self._build_navigator(settings)
        self._playwright_factory = playwright_factory

        # Serializes searches and idle teardown against each other
        self.lock = asyncio.Lock()
        self.idle_timer = IdleTimer(settings.search.idle_timeout_seconds, self._on_idle)

        logger.info(
            f"[BrowserSessionMgr] Initialized (headless={settings.browser.headless}, "
            f"idle_timeout={settings.search.idle_timeout_seconds}s)"
        )

    @staticmethod
    def _build_navigator(settings: Settings) -> PerplexityNavigator:
        discovery = SelectorDiscovery(
            candidate_timeout=settings.search.candidate_timeout_seconds,
            screenshot_dir=settings.browser.screenshot_dir,
        )
        return PerplexityNavigator(
            discovery,
            target_url=settings.search.target_url,
            target_domain=settings.search.target_domain,
            navigation_timeout=settings.timeouts.navigation,
            settle_seconds=settings.search.settle_seconds,
            screenshot_dir=settings.browser.screenshot_dir,
        )

    # ------------------------------------------------------------------
    # Activity / idle
    # ------------------------------------------------------------------

    def touch(self):
        """Record external activity; pushes the idle teardown out again."""
        self.idle_timer.reset()

    async def _on_idle(self):
        logger.info("[BrowserSessionMgr] Browser idle timeout reached, closing browser...")
        async with self.lock:
            await self.teardown()
        logger.info("[BrowserSessionMgr] Browser cleanup completed")

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def ensure_session(self) -> BrowserSession:
        """
        Return a ready session, creating it if needed.

        A caller arriving while setup is already under way gets the
        in-progress session back instead of launching a second browser.

        Raises:
            SessionInitError: browser, page or navigation setup failed
        """
        if self.session.is_usable:
            return self.session
        if self.session.is_initializing:
            logger.info("[BrowserSessionMgr] Browser initialization already in progress...")
            return self.session

        try:
            await self.setup()
        except SessionInitError:
            raise
        except Exception as e:
            raise SessionInitError(f"Browser initialization failed: {e}") from e
        return self.session

    async def setup(self):
        """Launch browser, open the page and navigate. Errors propagate."""
        if self.session.is_initializing:
            logger.info("[BrowserSessionMgr] Browser initialization already in progress...")
            return

        self.session.is_initializing = True
        try:
            await self.close_browser()

            browser_cfg = self.settings.browser
            logger.info(f"[BrowserSessionMgr] Launching Chromium (headless={browser_cfg.headless})")
            self.session.playwright = await self._playwright_factory().start()
            self.session.browser = await self.session.playwright.chromium.launch(
                headless=browser_cfg.headless,
                args=list(browser_cfg.launch_args),
            )

            page = await self.open_page()
            self.session.input_selector = await self.navigator.navigate(page)
            self.session.ready = True
            logger.info("[BrowserSessionMgr] Browser session ready")
        except Exception as e:
            logger.error(f"[BrowserSessionMgr] Browser initialization failed: {e}")
            raise
        finally:
            self.session.is_initializing = False

    async def open_page(self):
        """Open a page on the current browser with stealth, viewport and user agent."""
        browser = self.session.browser
        if browser is None:
            raise SessionInitError("Browser not initialized")

        browser_cfg = self.settings.browser
        page = await browser.new_page(
            viewport=browser_cfg.viewport,
            user_agent=browser_cfg.user_agent,
        )
        await apply_evasions(page)
        page.set_default_navigation_timeout(self.settings.timeouts.ms("navigation"))
        self.session.page = page
        return page

    # ------------------------------------------------------------------
    # Remediation primitives (used by RecoveryManager)
    # ------------------------------------------------------------------

    async def reload_page(self):
        page = self.session.page
        if page is None:
            raise SessionInitError("Page not initialized")
        await page.reload(timeout=self.settings.timeouts.ms("navigation"))

    async def replace_page(self):
        """Swap in a fresh page on the same browser and navigate it."""
        if self.session.browser is None:
            raise SessionInitError("Browser not initialized")

        self.session.ready = False
        if self.session.page is not None:
            await self.session.page.close()
            self.session.page = None

        page = await self.open_page()
        self.session.input_selector = await self.navigator.navigate(page)
        self.session.ready = True

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def teardown(self):
        """Close page, browser and driver; reset the session. Safe to repeat."""
        await self.close_browser()
        self.session.clear()

    async def shutdown(self):
        """Process shutdown: stop the idle timer and release the browser."""
        logger.info("[BrowserSessionMgr] Shutting down...")
        self.idle_timer.cancel()
        async with self.lock:
            await self.teardown()
        logger.info("[BrowserSessionMgr] Shutdown complete")

    async def close_browser(self):
        """Close page, browser and driver, keeping counters and timestamps."""
        session = self.session
        if session.page is not None:
            try:
                await session.page.close()
            except Exception as e:
                logger.debug(f"[BrowserSessionMgr] Page close error (may be already closed): {e}")
            session.page = None
        if session.browser is not None:
            try:
                await session.browser.close()
            except Exception as e:
                logger.debug(f"[BrowserSessionMgr] Browser close error: {e}")
            session.browser = None
        if session.playwright is not None:
            try:
                await session.playwright.stop()
            except Exception as e:
                logger.debug(f"[BrowserSessionMgr] Playwright stop error: {e}")
            session.playwright = None
        session.ready = False
        session.input_selector = None
