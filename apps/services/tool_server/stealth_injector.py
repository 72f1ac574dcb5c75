"""
Stealth injection for Playwright to bypass bot detection.

playwright-stealth covers the broad set of detection vectors (webdriver flag,
plugins, WebGL vendor, chrome.* namespaces and so on). A small supplement
script pins the desktop profile Perplexity sees: 8 cores, 8 GB device memory,
a permissions.query that answers "prompt", and the window.chrome app/runtime
enums.

Usage:
    from apps.services.tool_server.stealth_injector import apply_evasions

    page = await browser.new_page()
    await apply_evasions(page)
"""

import logging

from playwright_stealth import Stealth

logger = logging.getLogger(__name__)

_STEALTH = Stealth(
    navigator_platform_override="Win32",
    navigator_languages_override=("en-US", "en"),
)


def get_stealth_scripts() -> list[str]:
    """
    Supplement scripts installed after playwright-stealth's own payload.

    Returns:
        List of JavaScript code strings to inject via add_init_script()
    """
    return [
        _get_hardware_profile(),
        _get_chrome_object(),
    ]


def _get_hardware_profile() -> str:
    """Report a plausible desktop profile and a quiet permissions API"""
    return """
Object.defineProperties(navigator, {
  hardwareConcurrency: { get: () => 8 },
  deviceMemory: { get: () => 8 },
  permissions: {
    get: () => ({
      query: async () => ({ state: 'prompt' })
    })
  }
});
"""


def _get_chrome_object() -> str:
    """Fill in window.chrome app/runtime enums where they are still missing"""
    return """
window.chrome = window.chrome || {};
window.chrome.app = window.chrome.app || {
  InstallState: {
    DISABLED: 'disabled',
    INSTALLED: 'installed',
    NOT_INSTALLED: 'not_installed'
  },
  RunningState: {
    CANNOT_RUN: 'cannot_run',
    READY_TO_RUN: 'ready_to_run',
    RUNNING: 'running'
  },
  getDetails: function () {},
  getIsInstalled: function () {},
  installState: function () {},
  isInstalled: false,
  runningState: function () {}
};
window.chrome.runtime = window.chrome.runtime || {};
Object.assign(window.chrome.runtime, {
  OnInstalledReason: {
    CHROME_UPDATE: 'chrome_update',
    INSTALL: 'install',
    SHARED_MODULE_UPDATE: 'shared_module_update',
    UPDATE: 'update'
  },
  PlatformArch: {
    ARM: 'arm',
    ARM64: 'arm64',
    MIPS: 'mips',
    MIPS64: 'mips64',
    X86_32: 'x86-32',
    X86_64: 'x86-64'
  },
  PlatformNaclArch: {
    ARM: 'arm',
    MIPS: 'mips',
    PNACL: 'pnacl',
    X86_32: 'x86-32',
    X86_64: 'x86-64'
  },
  PlatformOs: {
    ANDROID: 'android',
    CROS: 'cros',
    LINUX: 'linux',
    MAC: 'mac',
    OPENBSD: 'openbsd',
    WIN: 'win'
  },
  RequestUpdateCheckStatus: {
    NO_UPDATE: 'no_update',
    THROTTLED: 'throttled',
    UPDATE_AVAILABLE: 'update_available'
  }
});
"""


async def apply_evasions(page, log: bool = True) -> None:
    """
    Install playwright-stealth plus the supplement scripts on a Playwright Page.

    Must run BEFORE navigation; the scripts apply to every document the page
    loads afterwards, including reloads.

    Args:
        page: Playwright Page instance
        log: Whether to log injection (default: True)
    """
    await _STEALTH.apply_stealth_async(page)

    scripts = get_stealth_scripts()
    await page.add_init_script("\n\n".join(scripts))
    if log:
        logger.info(f"[StealthInjector] Injected playwright-stealth + {len(scripts)} supplement scripts into page")
