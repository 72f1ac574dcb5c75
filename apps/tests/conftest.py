# conftest.py
# Ensure the repository root is on sys.path so pytest can import the
# namespace packages (apps.services.tool_server, libs.core) consistently.

import sys
from pathlib import Path

import pytest

# conftest is at: apps/tests/conftest.py
# Walk up two levels to reach the repository root.
ROOT = Path(__file__).resolve().parents[2]
ROOT_STR = str(ROOT)

if ROOT_STR not in sys.path:
    # Insert at front so repo root takes precedence during imports
    sys.path.insert(0, ROOT_STR)

from apps.tests.playwright_fakes import FakePage, FakePlaywrightDriver, make_home_page  # noqa: E402
from libs.core.config import (  # noqa: E402
    BrowserSettings,
    SearchSettings,
    Settings,
    StoreSettings,
    TimeoutProfile,
)


@pytest.fixture
def fast_settings(tmp_path) -> Settings:
    """Settings with every wait shrunk so tests run in well under a second each."""
    return Settings(
        browser=BrowserSettings(screenshot_dir=tmp_path / "screens", typing_delay_ms=0),
        timeouts=TimeoutProfile(navigation=1, selector=0.1, generation=5, recovery=0),
        search=SearchSettings(
            cooldown_seconds=0.2,
            settle_seconds=0,
            candidate_timeout_seconds=0.01,
            generation_poll_interval_seconds=0.05,
            idle_timeout_seconds=60,
        ),
        store=StoreSettings(db_path=tmp_path / "db" / "chat.db"),
    )


@pytest.fixture
def home_page() -> FakePage:
    return make_home_page()


@pytest.fixture
def fake_driver() -> FakePlaywrightDriver:
    return FakePlaywrightDriver(make_home_page)
