"""
Tests for browser session lifecycle: lazy setup, remediation primitives,
idle teardown and idempotent shutdown.
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from apps.services.tool_server.browser_session_manager import (
    BrowserSession,
    BrowserSessionManager,
    IdleTimer,
)
from apps.tests.playwright_fakes import FakePage, FakePlaywrightDriver, make_home_page
from libs.core.exceptions import NavigationError, SessionInitError


class TestEnsureSession:

    @pytest.mark.asyncio
    async def test_lazy_setup_then_reuse(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        assert not manager.session.is_usable

        session = await manager.ensure_session()
        again = await manager.ensure_session()

        assert session is again
        assert session.is_usable
        assert session.input_selector is not None
        assert len(fake_driver.chromium.launches) == 1

        launch = fake_driver.chromium.launches[0]
        assert launch["headless"] is True
        assert "--disable-blink-features=AutomationControlled" in launch["args"]

        new_page_kwargs = fake_driver.chromium.browsers[0].new_page_kwargs[0]
        assert new_page_kwargs["viewport"] == {"width": 1920, "height": 1080}
        assert "Chrome/120" in new_page_kwargs["user_agent"]
        assert session.page.default_navigation_timeout == 1000

    @pytest.mark.asyncio
    async def test_initializing_guard_returns_in_progress_session(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        manager.session.is_initializing = True

        session = await manager.ensure_session()

        assert session is manager.session
        assert fake_driver.chromium.launches == []

    @pytest.mark.asyncio
    async def test_launch_failure_is_session_init_error(self, fast_settings, fake_driver):
        fake_driver.chromium.launch_error = RuntimeError("no display")
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)

        with pytest.raises(SessionInitError):
            await manager.ensure_session()

        assert manager.session.is_initializing is False
        assert manager.session.ready is False

    @pytest.mark.asyncio
    async def test_navigation_failure_is_session_init_error(self, fast_settings):
        driver = FakePlaywrightDriver(lambda: FakePage(redirect_url="https://login.example.com/"))
        manager = BrowserSessionManager(fast_settings, playwright_factory=driver)

        with pytest.raises(SessionInitError) as exc_info:
            await manager.ensure_session()

        assert isinstance(exc_info.value.__cause__, NavigationError)

    @pytest.mark.asyncio
    async def test_closed_page_triggers_new_setup(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        session = await manager.ensure_session()
        session.page.closed = True

        await manager.ensure_session()

        assert len(fake_driver.chromium.launches) == 2
        assert fake_driver.chromium.browsers[0].closed


class TestRemediationPrimitives:

    @pytest.mark.asyncio
    async def test_reload_page(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        session = await manager.ensure_session()

        await manager.reload_page()

        assert session.page.reload_count == 1

    @pytest.mark.asyncio
    async def test_reload_without_page(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        with pytest.raises(SessionInitError):
            await manager.reload_page()

    @pytest.mark.asyncio
    async def test_replace_page_keeps_browser(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        session = await manager.ensure_session()
        old_page = session.page

        await manager.replace_page()

        assert old_page.closed
        assert session.page is not old_page
        assert session.page.goto_calls == ["networkidle"]
        assert session.page.init_scripts
        assert session.ready
        assert len(fake_driver.chromium.launches) == 1

    @pytest.mark.asyncio
    async def test_close_browser_keeps_counters(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        session = await manager.ensure_session()
        session.operation_count = 3
        session.last_search_at = 12.5

        await manager.close_browser()

        assert session.page is None and session.browser is None
        assert session.ready is False
        assert session.operation_count == 3
        assert session.last_search_at == 12.5


class TestTeardown:

    @pytest.mark.asyncio
    async def test_teardown_is_idempotent(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        session = await manager.ensure_session()
        page = session.page

        await manager.teardown()
        await manager.teardown()

        assert page.closed
        assert fake_driver.chromium.browsers[0].closed
        assert fake_driver.instances[0].stopped
        assert session == BrowserSession()

    @pytest.mark.asyncio
    async def test_teardown_on_empty_session(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        await manager.teardown()
        assert manager.session == BrowserSession()

    @pytest.mark.asyncio
    async def test_close_errors_do_not_stop_teardown(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        session = await manager.ensure_session()
        session.page.close_error = RuntimeError("Target closed")

        await manager.teardown()

        assert fake_driver.chromium.browsers[0].closed
        assert manager.session.page is None

    @pytest.mark.asyncio
    async def test_shutdown_cancels_idle_timer(self, fast_settings, fake_driver):
        manager = BrowserSessionManager(fast_settings, playwright_factory=fake_driver)
        manager.touch()
        await manager.ensure_session()

        await manager.shutdown()

        assert not manager.idle_timer.active
        assert manager.session.page is None


class TestIdleTimer:

    @pytest.mark.asyncio
    async def test_reset_replaces_pending_timer(self):
        on_expire = AsyncMock()
        timer = IdleTimer(0.1, on_expire)

        timer.reset()
        await asyncio.sleep(0.06)
        timer.reset()
        await asyncio.sleep(0.06)
        # 0.12s since the first reset, but only 0.06s since the second
        on_expire.assert_not_awaited()

        await asyncio.sleep(0.1)
        assert on_expire.await_count == 1
        assert not timer.active

    @pytest.mark.asyncio
    async def test_cancel(self):
        on_expire = AsyncMock()
        timer = IdleTimer(0.05, on_expire)
        timer.reset()
        timer.cancel()

        await asyncio.sleep(0.1)
        on_expire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_expiry_is_logged(self, caplog):
        timer = IdleTimer(0.01, AsyncMock(side_effect=RuntimeError("boom")))

        with caplog.at_level(logging.ERROR):
            timer.reset()
            await asyncio.sleep(0.05)

        assert "Idle teardown failed: boom" in caplog.text

    @pytest.mark.asyncio
    async def test_idle_expiry_tears_session_down(self, fast_settings):
        settings = fast_settings.model_copy(
            update={"search": fast_settings.search.model_copy(update={"idle_timeout_seconds": 0.05})}
        )
        driver = FakePlaywrightDriver(make_home_page)
        manager = BrowserSessionManager(settings, playwright_factory=driver)
        await manager.ensure_session()

        manager.touch()
        await asyncio.sleep(0.2)

        assert manager.session.browser is None
        assert driver.chromium.browsers[0].closed
