"""Custom exceptions for the Perplexity tool server."""

from enum import Enum
from typing import Any, Optional


class FailureCategory(str, Enum):
    """Structured condition codes attached to every pipeline step failure."""
    SESSION_INIT = "session_init"
    NAVIGATION = "navigation"
    FRAME_DETACHED = "frame_detached"
    TIMEOUT = "timeout"
    SELECTOR_MISSING = "selector_missing"
    CHALLENGE = "challenge"
    FALLBACK = "fallback"
    UNKNOWN = "unknown"


class PerplexityError(Exception):
    """Base exception for the Perplexity tool server."""

    kind: str = "perplexity_error"
    default_category: FailureCategory = FailureCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
        category: Optional[FailureCategory] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.category = category or self.default_category

    def describe(self) -> str:
        """Single-line description handed to the protocol layer."""
        return f"{self.kind}: {self.message}"


class SessionInitError(PerplexityError):
    """Browser or page could not be created."""

    kind = "session_init_failed"
    default_category = FailureCategory.SESSION_INIT


class NavigationError(PerplexityError):
    """Page load failed, landed on the wrong domain, or yielded no usable input."""

    kind = "navigation_failed"
    default_category = FailureCategory.NAVIGATION

    def __init__(
        self,
        message: str,
        url: str = "",
        context: Optional[dict[str, Any]] = None,
        category: Optional[FailureCategory] = None,
    ):
        super().__init__(message, context, category)
        self.url = url


class SelectorNotFoundError(PerplexityError):
    """No candidate input or answer selector qualified."""

    kind = "selector_not_found"
    default_category = FailureCategory.SELECTOR_MISSING


class ChallengeDetectedError(PerplexityError):
    """Anti-automation marker observed on the page."""

    kind = "challenge_detected"
    default_category = FailureCategory.CHALLENGE


class GenerationTimeoutError(PerplexityError):
    """
    Answer kept generating past the budget.

    Tolerated inside the pipeline: extraction proceeds with whatever is rendered.
    """

    kind = "generation_timeout"
    default_category = FailureCategory.TIMEOUT


class RecoveryError(PerplexityError):
    """Remediation itself failed."""

    kind = "recovery_failed"
    default_category = FailureCategory.FALLBACK


class SearchFailedError(PerplexityError):
    """Outer retry budget exhausted."""

    kind = "search_failed"

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.attempts = attempts


class ToolError(PerplexityError):
    """Unknown tool or invalid tool arguments."""

    kind = "tool_error"

    def __init__(
        self,
        message: str,
        tool: str,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.tool = tool
