"""
Unit tests for query-input discovery and the challenge detector.
"""

import pytest

from apps.services.tool_server.challenge_detector import CHALLENGE_MARKERS, has_challenge
from apps.services.tool_server.page_diagnostics import SEARCH_NOT_FOUND_SCREENSHOT
from apps.services.tool_server.selector_discovery import QUERY_INPUT_SELECTORS, SelectorDiscovery
from apps.tests.playwright_fakes import FakeElement, FakePage


@pytest.fixture
def discovery(tmp_path):
    return SelectorDiscovery(candidate_timeout=0.01, screenshot_dir=tmp_path)


class TestFindQueryInput:

    @pytest.mark.asyncio
    async def test_returns_third_candidate_when_only_it_matches(self, discovery):
        third = QUERY_INPUT_SELECTORS[2]
        page = FakePage()
        page.add(third, FakeElement())

        selector = await discovery.find_query_input(page)

        assert selector == third
        # Earlier candidates were probed first and rejected
        assert page.waited == QUERY_INPUT_SELECTORS[:3]

    @pytest.mark.asyncio
    async def test_first_candidate_wins_when_several_match(self, discovery):
        page = FakePage()
        for sel in QUERY_INPUT_SELECTORS:
            page.add(sel, FakeElement())

        assert await discovery.find_query_input(page) == QUERY_INPUT_SELECTORS[0]
        assert page.waited == QUERY_INPUT_SELECTORS[:1]

    @pytest.mark.asyncio
    async def test_skips_aria_hidden_and_disabled_matches(self, discovery):
        page = FakePage()
        page.add(QUERY_INPUT_SELECTORS[0], FakeElement(attrs={"aria-hidden": "true"}))
        page.add(QUERY_INPUT_SELECTORS[1], FakeElement(enabled=False))
        page.add(QUERY_INPUT_SELECTORS[3], FakeElement())

        assert await discovery.find_query_input(page) == QUERY_INPUT_SELECTORS[3]

    @pytest.mark.asyncio
    async def test_invisible_match_does_not_qualify(self, discovery):
        page = FakePage()
        page.add(QUERY_INPUT_SELECTORS[0], FakeElement(visible=False))
        page.add("textarea", FakeElement())

        assert await discovery.find_query_input(page) == "textarea"

    @pytest.mark.asyncio
    async def test_no_candidate_returns_none_and_screenshots(self, discovery, tmp_path):
        page = FakePage()

        assert await discovery.find_query_input(page) is None
        assert page.waited == QUERY_INPUT_SELECTORS
        assert page.screenshots == [SEARCH_NOT_FOUND_SCREENSHOT]

    @pytest.mark.asyncio
    async def test_screenshot_failure_is_advisory(self, discovery):
        page = FakePage()
        page.screenshot_error = RuntimeError("target closed")

        assert await discovery.find_query_input(page) is None


class TestChallengeDetector:

    @pytest.mark.asyncio
    async def test_detects_marker(self):
        page = FakePage()
        page.add('iframe[src*="turnstile"]', FakeElement())
        assert await has_challenge(page) is True

    @pytest.mark.asyncio
    async def test_clean_page(self, home_page):
        assert await has_challenge(home_page) is False

    @pytest.mark.asyncio
    async def test_query_error_means_no_challenge(self):
        page = FakePage()
        page.add(CHALLENGE_MARKERS[0], FakeElement())
        page.query_error = RuntimeError("Execution context was destroyed")
        assert await has_challenge(page) is False

    @pytest.mark.asyncio
    async def test_missing_page(self):
        assert await has_challenge(None) is False
