"""
Persistence for runs, queue items, pages, scenarios and test results.
"""

from .base import DiscoveryStore
from .memory import InMemoryStore
from .sqlite import SqliteStore

__all__ = ['DiscoveryStore', 'InMemoryStore', 'SqliteStore']
