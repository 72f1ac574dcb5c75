# Tool Server package initializer
# Makes `tool_server` a proper package so imports like
# `from apps.services.tool_server.perplexity_search import ...` work under pytest.
#
# Keep this file minimal. Importing submodules here would pull in Playwright
# during test collection.

"""Tool Server package - Perplexity search over a managed browser session.

Modules:
- browser_session_manager: browser/page lifecycle, idle teardown
- perplexity_navigator: navigation with wait-condition fallback
- selector_discovery: query-input discovery
- challenge_detector: CAPTCHA / verification probe
- recovery_manager: tiered recovery state machine
- perplexity_search: search & answer extraction pipeline
- conversation_store: SQLite chat history
- perplexity_mcp: tool catalogue
"""

__all__ = [
    "browser_session_manager",
    "perplexity_navigator",
    "selector_discovery",
    "challenge_detector",
    "recovery_manager",
    "perplexity_search",
    "conversation_store",
    "perplexity_mcp",
    "stealth_injector",
    "page_diagnostics",
]

__version__ = "0.1.0"
