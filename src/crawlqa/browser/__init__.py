"""
Browser session management and the discovery page actor.
"""

from .elements import build_inventory, classify, unique_selectors
from .manager import BrowserManager, browser_session
from .page_actor import PageActor, PageCapture

__all__ = [
    'build_inventory', 'classify', 'unique_selectors',
    'BrowserManager', 'browser_session', 'PageActor', 'PageCapture',
]
