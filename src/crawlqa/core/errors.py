"""
Error Taxonomy

Every failure the discovery and execution engine can attribute gets its own
exception type. Callers catch the narrow type where they can recover and let
`RunFatalError` escape to the run controller.

    CrawlQAError
    ├── NavigationError
    ├── CaptureError
    ├── ResolutionFailure
    ├── OracleError
    ├── PersistenceError
    ├── RunFatalError
    ├── InvalidTransitionError
    └── ConfigError
"""

from typing import Any, Dict, List, Optional


class CrawlQAError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str = "", context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)


class NavigationError(CrawlQAError):
    """A page could not be reached after all attempts."""

    def __init__(self, url: str, attempts: int, reason: str = ""):
        msg = f"Navigation to {url} failed after {attempts} attempt(s)"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, context={"url": url, "attempts": attempts})


class CaptureError(CrawlQAError):
    """DOM or title capture failed for a page that did load."""


class ResolutionFailure(CrawlQAError):
    """No locator candidate could be acted upon."""

    def __init__(self, selector: str, action: str, tried: Optional[List[str]] = None,
                 last_error: str = ""):
        tried = tried or []
        msg = f"Could not {action} '{selector}' after {len(tried)} candidate(s)"
        if last_error:
            msg += f" ({last_error})"
        super().__init__(msg, context={"selector": selector, "action": action, "tried": tried})
        self.tried = tried


class OracleError(CrawlQAError):
    """The decision oracle was unreachable or answered with garbage."""


class PersistenceError(CrawlQAError):
    """A store write failed for a reason other than a uniqueness conflict."""


class RunFatalError(CrawlQAError):
    """The run cannot continue, e.g. the start URL is unreachable."""


class InvalidTransitionError(CrawlQAError):
    """A run lifecycle command was issued from a state that does not allow it."""

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move run from '{current}' to '{target}'",
            context={"current": current, "target": target},
        )
        self.current = current
        self.target = target


class ConfigError(CrawlQAError):
    """Configuration file could not be read or is invalid."""
